"""
Typed Exception Hierarchy for the Tranche Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The accounting engine sits underneath deposit and redeem flows that move
real funds.  Callers must decide -- by type, never by message text --
whether an error means "retry with different input", "reject the caller",
or "abort everything, something is corrupt".

Every exception:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (survives JSON logging)

Example:
    try:
        accountant.post_op_sync_and_enforce_coverage(...)
    except CoverageRequirementUnsatisfiedError as e:
        # Expected outcome: the withdrawal is too large.  Nothing persisted.
        return reject(code=e.code, utilization=e.utilization)
    except ConsistencyError:
        # Caller bug or bypassed invariant.  Never auto-retry.
        raise

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    TrancheKernelError (base)
    |
    +-- ConfigurationError
    |   +-- InvalidCoverageConfigError
    |   +-- ProtocolFeeTooHighError
    |   +-- MissingReferenceError
    |   +-- YieldModelNotFoundError
    |
    +-- AuthorizationError
    |   +-- UnauthorizedCallerError
    |
    +-- ConsistencyError
    |   +-- InvalidPostOpStateError
    |   +-- ConservationViolationError
    |   +-- ClockRegressionError
    |
    +-- CoverageError
    |   +-- CoverageRequirementUnsatisfiedError
    |
    +-- MarketError
    |   +-- MarketNotFoundError
    |   +-- MarketAlreadyExistsError
    |
    +-- ConcurrencyError
        +-- OptimisticLockError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                              | When Raised
----------------|-----------------------------------|-----------------------------------
Configuration   | INVALID_COVERAGE_CONFIG           | coverage/beta outside safe bounds
                | PROTOCOL_FEE_TOO_HIGH             | fee rate above configured max
                | MISSING_REFERENCE                 | required collaborator not wired
                | YIELD_MODEL_NOT_FOUND             | unknown yield model name
----------------|-----------------------------------|-----------------------------------
Authorization   | UNAUTHORIZED_CALLER               | not the kernel / not the admin
----------------|-----------------------------------|-----------------------------------
Consistency     | INVALID_POST_OP_STATE             | op kind vs observed deltas mismatch
                | CONSERVATION_VIOLATION            | raw sum != effective sum
                | CLOCK_REGRESSION                  | now earlier than last checkpoint
----------------|-----------------------------------|-----------------------------------
Coverage        | COVERAGE_REQUIREMENT_UNSATISFIED  | utilization > 1 after the operation
----------------|-----------------------------------|-----------------------------------
Market          | MARKET_NOT_FOUND                  | no ledger for the market code
                | MARKET_ALREADY_EXISTS             | duplicate market code
----------------|-----------------------------------|-----------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT          | ledger row changed underneath us

===============================================================================
HANDLING PATTERNS
===============================================================================

1. ConfigurationError: rejected before any mutation.  Fix input, retry.
2. AuthorizationError: rejected, no state change.  Do not retry.
3. ConsistencyError: fatal for the enclosing operation.  The whole
   operation (including any fund movement already attempted) must be rolled
   back.  Same inputs reproduce the same error -- NEVER auto-retry.
4. CoverageError: expected, non-corrupting.  Retry with a smaller amount.
5. ConcurrencyError: safe to retry the whole unit of work.
"""


class TrancheKernelError(Exception):
    """
    Base exception for all tranche kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "TRANCHE_KERNEL_ERROR"


# Configuration errors


class ConfigurationError(TrancheKernelError):
    """Base exception for invalid market parameters or wiring."""

    code: str = "CONFIGURATION_ERROR"


class InvalidCoverageConfigError(ConfigurationError):
    """Coverage ratio / beta combination is outside the safe domain."""

    code: str = "INVALID_COVERAGE_CONFIG"

    def __init__(self, coverage: str, beta: str, reason: str):
        self.coverage = coverage
        self.beta = beta
        self.reason = reason
        super().__init__(
            f"Invalid coverage configuration (coverage={coverage}, beta={beta}): {reason}"
        )


class ProtocolFeeTooHighError(ConfigurationError):
    """A protocol fee rate exceeds the configured maximum."""

    code: str = "PROTOCOL_FEE_TOO_HIGH"

    def __init__(self, tranche: str, fee: str, max_fee: str):
        self.tranche = tranche
        self.fee = fee
        self.max_fee = max_fee
        super().__init__(
            f"{tranche} protocol fee {fee} exceeds maximum {max_fee}"
        )


class MissingReferenceError(ConfigurationError):
    """A required collaborator (kernel, NAV source, yield model) is missing."""

    code: str = "MISSING_REFERENCE"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Missing required reference: {reference}")


class YieldModelNotFoundError(ConfigurationError):
    """No yield distribution model is registered under the given name."""

    code: str = "YIELD_MODEL_NOT_FOUND"

    def __init__(self, model_name: str):
        self.model_name = model_name
        super().__init__(f"Yield distribution model not registered: {model_name}")


# Authorization errors


class AuthorizationError(TrancheKernelError):
    """Base exception for caller authorization failures."""

    code: str = "AUTHORIZATION_ERROR"


class UnauthorizedCallerError(AuthorizationError):
    """Caller is not the registered kernel (or not the market admin)."""

    code: str = "UNAUTHORIZED_CALLER"

    def __init__(self, actor_id: str, required_role: str, market_code: str):
        self.actor_id = actor_id
        self.required_role = required_role
        self.market_code = market_code
        super().__init__(
            f"Actor {actor_id} is not the {required_role} of market {market_code}"
        )


# Consistency errors


class ConsistencyError(TrancheKernelError):
    """
    Base exception for mutually inconsistent inputs or broken arithmetic.

    Fatal for the enclosing operation.  Never auto-retried.
    """

    code: str = "CONSISTENCY_ERROR"


class InvalidPostOpStateError(ConsistencyError):
    """The post-op kind and the observed raw NAV deltas disagree."""

    code: str = "INVALID_POST_OP_STATE"

    def __init__(self, kind: str, st_delta_units: int, jt_delta_units: int, reason: str):
        self.kind = kind
        self.st_delta_units = st_delta_units
        self.jt_delta_units = jt_delta_units
        self.reason = reason
        super().__init__(
            f"Invalid post-op state for {kind} "
            f"(st_delta={st_delta_units}, jt_delta={jt_delta_units}): {reason}"
        )


class ConservationViolationError(ConsistencyError):
    """Raw NAV total does not equal effective NAV total after the waterfall."""

    code: str = "CONSERVATION_VIOLATION"

    def __init__(self, raw_total_units: int, effective_total_units: int, stage: str):
        self.raw_total_units = raw_total_units
        self.effective_total_units = effective_total_units
        self.stage = stage
        super().__init__(
            f"Conservation violated at {stage}: raw={raw_total_units} "
            f"effective={effective_total_units}"
        )


class ClockRegressionError(ConsistencyError):
    """The supplied time is earlier than the last accrual checkpoint."""

    code: str = "CLOCK_REGRESSION"

    def __init__(self, now: int, last_checkpoint: int):
        self.now = now
        self.last_checkpoint = last_checkpoint
        super().__init__(
            f"Clock regression: now={now} precedes last checkpoint {last_checkpoint}"
        )


# Coverage errors


class CoverageError(TrancheKernelError):
    """Base exception for coverage (collateralization) failures."""

    code: str = "COVERAGE_ERROR"


class CoverageRequirementUnsatisfiedError(CoverageError):
    """The operation would leave the market under-collateralized."""

    code: str = "COVERAGE_REQUIREMENT_UNSATISFIED"

    def __init__(self, market_code: str, utilization: str):
        self.market_code = market_code
        self.utilization = utilization
        super().__init__(
            f"Coverage requirement unsatisfied for market {market_code}: "
            f"utilization={utilization}"
        )


# Market errors


class MarketError(TrancheKernelError):
    """Base exception for market lookup/creation errors."""

    code: str = "MARKET_ERROR"


class MarketNotFoundError(MarketError):
    """No ledger exists for the market code."""

    code: str = "MARKET_NOT_FOUND"

    def __init__(self, market_code: str):
        self.market_code = market_code
        super().__init__(f"Market not found: {market_code}")


class MarketAlreadyExistsError(MarketError):
    """A ledger already exists for the market code."""

    code: str = "MARKET_ALREADY_EXISTS"

    def __init__(self, market_code: str):
        self.market_code = market_code
        super().__init__(f"Market already exists: {market_code}")


# Concurrency errors


class ConcurrencyError(TrancheKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )
