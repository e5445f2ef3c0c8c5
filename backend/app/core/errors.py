class CurriculumServiceError(Exception):
    """Base class for errors raised by the curriculum pipelines."""


class OracleError(CurriculumServiceError):
    """The text-generation service failed: transport, timeout, non-2xx, refusal."""


class OracleContractError(OracleError):
    """The oracle answered, but the answer does not match the expected schema."""


class StoreError(CurriculumServiceError):
    """I/O failure against the relational store."""


class ConfigurationGapError(CurriculumServiceError):
    """No taxonomy mapping or capability spec is registered for an app.

    Not a failure: callers skip the affected app or pairing and count it as
    not checkable.
    """

    def __init__(self, app_id: str, what: str):
        self.app_id = app_id
        self.what = what
        super().__init__(f"no {what} registered for app '{app_id}'")
