from databricks.sdk.errors import DatabricksError, NotFound

from dbjobs.core.errors import is_missing, wrap_missing_job_error


def test_missing_job_message_is_reclassified():
    err = DatabricksError("Job 123 does not exist.")

    wrapped = wrap_missing_job_error(err, 123)

    assert isinstance(wrapped, NotFound)
    assert is_missing(wrapped)
    assert wrapped.__cause__ is err
    assert "Job 123 does not exist." in str(wrapped)


def test_message_for_another_job_is_left_alone():
    err = DatabricksError("Job 1234 does not exist.")

    assert wrap_missing_job_error(err, 123) is err


def test_unrelated_errors_are_left_alone():
    err = DatabricksError("INVALID_PARAMETER_VALUE: bad cron")

    assert wrap_missing_job_error(err, 123) is err
    assert not is_missing(err)


def test_already_missing_error_is_returned_as_is():
    err = NotFound("RESOURCE_DOES_NOT_EXIST")

    assert wrap_missing_job_error(err, 123) is err


def test_non_sdk_errors_are_returned_as_is():
    err = RuntimeError("Job 123 does not exist.")

    assert wrap_missing_job_error(err, 123) is err
