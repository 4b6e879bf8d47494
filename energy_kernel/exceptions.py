"""
Typed Exception Hierarchy for the Energy Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the allocation core (HTTP layer, batch jobs, CLI) must react to
failures by KIND, not by message text:
  - a ValidationError is the caller's fault and is never retried
  - a ResourceLockedError may be retried after a backoff
  - an OptimisticConcurrencyError requires a re-read before retrying

Every exception therefore:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries its context as attributes (not just a message string)

Example:
    try:
        service.update_allocation(request)
    except ResourceLockedError as e:
        schedule_retry(after_ms=backoff(e.resource_id))
    except ChargeConflictError as e:
        api_response(code=e.code, existing=e.existing_key)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    EnergyKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidMonthKeyError
    |   +-- InvalidPeriodKeysError
    |   +-- NegativePeriodValueError
    |   +-- MissingFieldError
    |   +-- InvalidSourceTypeError
    |   +-- InvalidAllocationKeyError
    |   +-- ChargeOnZeroTotalError
    |
    +-- ChargeConflictError
    |
    +-- ConcurrencyError
    |   +-- ResourceLockedError
    |   +-- OptimisticConcurrencyError
    |
    +-- NotFoundError
    |   +-- AllocationNotFoundError
    |   +-- ProductionSiteNotFoundError
    |
    +-- TransactionError
        +-- PartialWriteError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                            | When Raised
----------------|---------------------------------|-------------------------------------
Validation      | INVALID_MONTH_KEY               | Month key is not MMYYYY
                | INVALID_PERIOD_KEYS             | Period map missing/extra c1..c5 keys
                | NEGATIVE_PERIOD_VALUE           | A period quantity is below zero
                | MISSING_FIELD                   | Required payload field absent
                | INVALID_SOURCE_TYPE             | Production type not SOLAR/WIND
                | INVALID_ALLOCATION_KEY          | pk is not company_production_consumption
                | CHARGE_ON_ZERO_TOTAL            | charge=1 on a record with no units
----------------|---------------------------------|-------------------------------------
Charge          | CHARGE_CONFLICT                 | Another record already charged
----------------|---------------------------------|-------------------------------------
Concurrency     | RESOURCE_LOCKED                 | Site locked by another transaction
                | OPTIMISTIC_CONCURRENCY_CONFLICT | Ledger row version mismatch
----------------|---------------------------------|-------------------------------------
Not found       | ALLOCATION_NOT_FOUND            | No allocation row for the key
                | PRODUCTION_SITE_NOT_FOUND       | Site missing from the registry
----------------|---------------------------------|-------------------------------------
Transaction     | PARTIAL_WRITE                   | Rollback could not undo every write

An unbalanced month (consumption left over, or production left over) is
NOT an error. It is returned as data on the allocation result.
"""

from __future__ import annotations

from typing import Any


class EnergyKernelError(Exception):
    """
    Base exception for all energy kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "ENERGY_KERNEL_ERROR"


# Validation exceptions


class ValidationError(EnergyKernelError):
    """Base exception for caller input that fails validation. Never retried."""

    code: str = "VALIDATION_ERROR"


class InvalidMonthKeyError(ValidationError):
    """Month key is not exactly MM (01-12) followed by YYYY."""

    code: str = "INVALID_MONTH_KEY"

    def __init__(self, value: Any):
        self.value = value
        super().__init__(
            f"Invalid month key: {value!r}. Must be in MMYYYY format (e.g., 042025)"
        )


class InvalidPeriodKeysError(ValidationError):
    """Period mapping does not carry exactly the keys c1..c5."""

    code: str = "INVALID_PERIOD_KEYS"

    def __init__(self, field_name: str, missing: tuple[str, ...], unexpected: tuple[str, ...]):
        self.field_name = field_name
        self.missing = missing
        self.unexpected = unexpected
        parts = []
        if missing:
            parts.append(f"missing {', '.join(missing)}")
        if unexpected:
            parts.append(f"unexpected {', '.join(unexpected)}")
        super().__init__(f"Invalid period keys for {field_name}: {'; '.join(parts)}")


class NegativePeriodValueError(ValidationError):
    """A period quantity that must be non-negative is below zero."""

    code: str = "NEGATIVE_PERIOD_VALUE"

    def __init__(self, field_name: str, period: str, value: Any):
        self.field_name = field_name
        self.period = period
        self.value = value
        super().__init__(f"{field_name}.{period} cannot be negative (got {value})")


class MissingFieldError(ValidationError):
    """One or more required fields are absent or empty."""

    code: str = "MISSING_FIELD"

    def __init__(self, fields: tuple[str, ...] | list[str]):
        self.fields = tuple(fields)
        super().__init__(f"Missing required fields: {', '.join(self.fields)}")


class InvalidSourceTypeError(ValidationError):
    """Production source type is neither SOLAR nor WIND."""

    code: str = "INVALID_SOURCE_TYPE"

    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"Invalid production source type: {value!r}")


class InvalidAllocationKeyError(ValidationError):
    """Allocation pk is not ``company_production_consumption``."""

    code: str = "INVALID_ALLOCATION_KEY"

    def __init__(self, value: Any):
        self.value = value
        super().__init__(
            f"Invalid allocation key: {value!r}. "
            "Must be companyId_productionSiteId_consumptionSiteId"
        )


class ChargeOnZeroTotalError(ValidationError):
    """A record with zero allocated units cannot be the chargeable one."""

    code: str = "CHARGE_ON_ZERO_TOTAL"

    def __init__(self, allocation_key: str):
        self.allocation_key = allocation_key
        super().__init__(
            f"Cannot set charge=1 for allocation {allocation_key} with zero units"
        )


# Charge invariant


class ChargeConflictError(EnergyKernelError):
    """A second record in the same company and month claims charge=1."""

    code: str = "CHARGE_CONFLICT"

    def __init__(self, company_id: str, month: str, existing_key: str, requested_key: str):
        self.company_id = company_id
        self.month = month
        self.existing_key = existing_key
        self.requested_key = requested_key
        super().__init__(
            f"Month {month} for company {company_id} already has a chargeable "
            f"allocation ({existing_key}); cannot also charge {requested_key}"
        )


# Concurrency exceptions


class ConcurrencyError(EnergyKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ResourceLockedError(ConcurrencyError):
    """Advisory lock on a resource is held by another live transaction."""

    code: str = "RESOURCE_LOCKED"

    def __init__(self, resource_id: str, holder_transaction_id: str, requested_by: str):
        self.resource_id = resource_id
        self.holder_transaction_id = holder_transaction_id
        self.requested_by = requested_by
        super().__init__(
            f"Resource {resource_id} is locked by transaction {holder_transaction_id}"
        )


class OptimisticConcurrencyError(ConcurrencyError):
    """Version check failed on a ledger write; caller must re-read and retry."""

    code: str = "OPTIMISTIC_CONCURRENCY_CONFLICT"

    def __init__(self, entity_type: str, entity_key: str, expected_version: int):
        self.entity_type = entity_type
        self.entity_key = entity_key
        self.expected_version = expected_version
        super().__init__(
            f"Optimistic concurrency conflict on {entity_type} {entity_key}: "
            f"expected version {expected_version}, row was modified by another writer"
        )


# Lookup exceptions


class NotFoundError(EnergyKernelError):
    """Base exception for missing rows."""

    code: str = "NOT_FOUND"


class AllocationNotFoundError(NotFoundError):
    """No allocation record exists for the key."""

    code: str = "ALLOCATION_NOT_FOUND"

    def __init__(self, allocation_key: str):
        self.allocation_key = allocation_key
        super().__init__(f"Allocation not found: {allocation_key}")


class ProductionSiteNotFoundError(NotFoundError):
    """Production site is not registered for the company."""

    code: str = "PRODUCTION_SITE_NOT_FOUND"

    def __init__(self, company_id: str, production_site_id: str):
        self.company_id = company_id
        self.production_site_id = production_site_id
        super().__init__(
            f"Production site not found: {production_site_id} (company {company_id})"
        )


# Transaction exceptions


class TransactionError(EnergyKernelError):
    """Base exception for multi-ledger write failures."""

    code: str = "TRANSACTION_ERROR"


class PartialWriteError(TransactionError):
    """A multi-ledger write failed and rollback could not undo every step."""

    code: str = "PARTIAL_WRITE"

    def __init__(self, transaction_id: str, failed_steps: tuple[str, ...]):
        self.transaction_id = transaction_id
        self.failed_steps = failed_steps
        super().__init__(
            f"Rollback of transaction {transaction_id} incomplete: "
            f"{len(failed_steps)} step(s) could not be undone"
        )
