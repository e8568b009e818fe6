import pytest
from sqlalchemy.exc import OperationalError

from pqr_scheduling.core import config
from pqr_scheduling.core.errors import DependencyError, NotFoundError
from pqr_scheduling.scheduling.guards import storage_guard


class FakeSession:
    def __init__(self) -> None:
        self.rollbacks = 0

    def rollback(self) -> None:
        self.rollbacks += 1


class Service:
    def __init__(self) -> None:
        self.db = FakeSession()

    @storage_guard
    def broken(self):
        raise OperationalError('SELECT 1', {}, Exception('server closed the connection'))

    @storage_guard
    def missing(self):
        raise NotFoundError('Branch with ID 3 not found')


def test_storage_failure_rolls_back_and_becomes_dependency_error() -> None:
    service = Service()

    with pytest.raises(DependencyError) as exception_info:
        service.broken()

    assert service.db.rollbacks == 1
    assert exception_info.value.status_code == 503


def test_domain_errors_pass_through_untouched() -> None:
    service = Service()

    with pytest.raises(NotFoundError):
        service.missing()

    assert service.db.rollbacks == 0


def test_runtime_config_rejects_default_secret_in_production(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'APP_ENV', 'production')
    monkeypatch.setattr(config, 'JWT_SECRET_KEY', 'change-me')

    with pytest.raises(RuntimeError):
        config.validate_runtime_config()


def test_runtime_config_accepts_development_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'APP_ENV', 'development')
    monkeypatch.setattr(config, 'NOTIFICATION_MAX_RETRIES', 3)

    config.validate_runtime_config()
