import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from stockchain.errors import NotFound, PartialWriteFailure
from stockchain.services.concurrency import run_atomic


class TestRunAtomic:
    def test_retries_conflicts_then_succeeds(self, db_session):
        calls = []

        def _op():
            calls.append(1)
            if len(calls) < 3:
                raise StaleDataError("version mismatch")
            return "done"

        assert run_atomic(_op, operation="retry", backoff_base=0) == "done"
        assert len(calls) == 3

    def test_exhausted_retries_become_partial_write_failure(self, db_session):
        def _op():
            raise StaleDataError("version mismatch")

        with pytest.raises(PartialWriteFailure) as exc:
            run_atomic(_op, operation="always_stale", attempts=2, backoff_base=0)
        assert exc.value.operation == "always_stale"
        assert exc.value.http_status == 500

    def test_database_error_becomes_partial_write_failure(self, db_session):
        def _op():
            raise IntegrityError("INSERT", {}, Exception("unique"))

        with pytest.raises(PartialWriteFailure) as exc:
            run_atomic(_op, operation="insert")
        assert isinstance(exc.value.cause, IntegrityError)

    def test_domain_errors_pass_through(self, db_session):
        def _op():
            raise NotFound("Entry 9 not found")

        with pytest.raises(NotFound):
            run_atomic(_op, operation="lookup")

    def test_no_commit_runs_inline(self, db_session):
        def _op():
            raise StaleDataError("caller handles it")

        with pytest.raises(StaleDataError):
            run_atomic(_op, operation="inline", commit=False)
