from __future__ import annotations


class SfInsightError(Exception):
    """Base error for sfinsight."""


class SalesforceError(SfInsightError):
    """Salesforce integration failure."""


class SalesforceAuthError(SalesforceError):
    """Salesforce rejected the credentials or the session expired."""


class SalesforceApiError(SalesforceError):
    """Salesforce request failure."""


class SalesforceTimeoutError(SalesforceError):
    """Salesforce call exceeded the configured timeout."""


class CredentialError(SfInsightError):
    """Stored credential is missing or cannot be decrypted."""


class QueryBuildError(SfInsightError):
    """Query builder inputs cannot form a query."""


class DataDictionaryError(SfInsightError):
    """Invalid data dictionary operation."""


class ValidationFailedError(SfInsightError):
    """Request failed validation; carries every problem found."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = list(errors)
