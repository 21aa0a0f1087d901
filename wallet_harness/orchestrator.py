"""
Transaction Orchestrator: drives transactions through the wallet service
and checks what comes back.

Per transaction the flow is:

  1. (optional) business-rule pre-check, failing fast without a remote call
  2. create the transaction
  3. (optional) poll until the transaction is ``finished`` or the soft
     timeout elapses, on a fixed interval
  4. validate request/response contracts, transaction state and, for
     approved transactions in sequential batches, the balance movement

Session state (token, user info, latest wallet snapshot, created
transactions) lives in a caller-owned ``ScenarioContext`` threaded through
every call; the orchestrator is its only writer.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from wallet_harness.business_rules import BusinessRuleValidator, only_insufficient_balance
from wallet_harness.client import WalletApiClient
from wallet_harness.consistency import check_balance_update, check_debit_currency, check_transaction_state
from wallet_harness.contracts import ContractValidator
from wallet_harness.data_generator import TestDataGenerator
from wallet_harness.models import (
    ApiResponse,
    AuthSession,
    BatchOptions,
    BatchResult,
    DurationStats,
    HarnessConfig,
    InvalidationKind,
    NegativeOutcome,
    OrderPolicy,
    ScenarioName,
    SubmitOptions,
    TransactionResult,
    TransactionStatus,
    TransactionTemplate,
    ValidationReport,
    ValidationResult,
    WorkflowReport,
)
from wallet_harness.performance import PerformanceRecorder, calculate_stats

logger = logging.getLogger(__name__)


@dataclass
class ScenarioContext:
    """Everything one scenario knows about its user; owned by the caller."""
    session: AuthSession
    user_info: dict[str, Any]
    wallet: dict[str, Any] | None = None
    transactions: dict[str, TransactionResult] = field(default_factory=dict)

    @property
    def wallet_id(self) -> str:
        return self.user_info["walletId"]


def _is_terminal(response: ApiResponse | None) -> bool:
    return response is not None and response.field("status") == TransactionStatus.FINISHED.value


class TransactionOrchestrator:
    """Composes the transport, validators, generator and recorder."""

    def __init__(
        self,
        client: WalletApiClient,
        config: HarnessConfig | None = None,
        generator: TestDataGenerator | None = None,
        contract_validator: ContractValidator | None = None,
        business_validator: BusinessRuleValidator | None = None,
        recorder: PerformanceRecorder | None = None,
    ):
        self.client = client
        self.config = config or HarnessConfig()
        self.generator = generator or TestDataGenerator(self.config)
        self.contracts = contract_validator or ContractValidator()
        self.business = business_validator or BusinessRuleValidator(self.config.rules)
        self.recorder = recorder or PerformanceRecorder()

    @property
    def _create_ceiling_ms(self) -> float:
        return self.config.timeouts.performance * 1000

    def _timed(self, label: str, response: ApiResponse, expected_max_ms: float | None = None) -> ApiResponse:
        self.recorder.record(label, response.duration_ms, expected_max_ms)
        return response

    def _check_schema(self, data: Any, schema_name: str) -> ValidationResult:
        result = self.contracts.validate(data, schema_name)
        if result.valid:
            logger.debug("Schema '%s' passed", schema_name)
        else:
            logger.warning("Schema '%s' failed: %s", schema_name, "; ".join(result.errors))
        return result

    # ── service probes ──────────────────────────────────────────────────
    async def wake_up(self) -> ValidationResult:
        """Wake a sleeping deployment; raises ``TransportFailure`` on non-2xx."""
        response = self._timed("wakeup", await self.client.wakeup())
        response.raise_for_failure()
        logger.info("Wallet service is awake (%.0fms)", response.duration_ms)
        return self._check_schema(response.body, "wakeup")

    async def check_health(self) -> ValidationResult:
        response = self._timed("health", await self.client.health())
        response.raise_for_failure()
        return self._check_schema(response.body, "health")

    # ── session ─────────────────────────────────────────────────────────
    def _password_for(self, username: str) -> str:
        for user in self.config.test_users:
            if user.username == username:
                return user.password
        raise ValueError(f"No configured password for user '{username}'")

    async def open_session(self, username: str | None = None, password: str | None = None) -> ScenarioContext:
        """
        Log in (a random configured user when none is given), then fetch the
        user's info and wallet.  Any non-2xx step raises ``TransportFailure``.
        """
        if username is None:
            user = self.generator.random_user()
            username, password = user.username, user.password
        elif password is None:
            password = self._password_for(username)

        login = self._timed("login", await self.client.login(username, password))
        login.raise_for_failure()
        self._check_schema(login.body, "user-token")

        body = login.body
        session = AuthSession(
            token=body["token"],
            refresh_token=body.get("refreshToken", ""),
            user_id=body["userId"],
            expiry=body.get("expiry", ""),
            username=username,
        )

        info = self._timed("user-info", await self.client.get_user_info(session.user_id, session.token))
        info.raise_for_failure()
        self._check_schema(info.body, "user-info")

        ctx = ScenarioContext(session=session, user_info=info.body)
        await self.refresh_wallet(ctx)
        logger.info("Session opened for %s (wallet %s)", username, ctx.wallet_id)
        return ctx

    async def refresh_wallet(self, ctx: ScenarioContext) -> dict[str, Any]:
        """Fetch a fresh wallet snapshot into ``ctx.wallet``."""
        response = self._timed("wallet-fetch", await self.client.get_wallet(ctx.wallet_id, ctx.session.token))
        response.raise_for_failure()
        ctx.wallet = response.body
        return ctx.wallet

    # ── single transaction ──────────────────────────────────────────────
    async def submit(
        self,
        spec: Any,
        ctx: ScenarioContext,
        options: SubmitOptions | None = None,
    ) -> TransactionResult:
        """
        Send one create request.  With ``validate_business_rules`` the payload is
        checked against ``ctx.wallet`` first and never sent when it breaks
        a rule, unless the only violation is insufficient balance and
        ``allow_insufficient_balance`` is set.
        """
        options = options or SubmitOptions()
        business: ValidationResult | None = None

        if options.validate_business_rules:
            business = self.business.check_business_rules(spec, ctx.wallet)
            allowed = options.allow_insufficient_balance and only_insufficient_balance(business)
            if not business.valid and not allowed:
                logger.warning("Transaction rejected locally: %s", "; ".join(business.errors))
                return TransactionResult(
                    spec=spec,
                    business_validation=business,
                    report=ValidationReport(results=[business]),
                    locally_rejected=True,
                )
            if not business.valid:
                logger.info("Sending spec with insufficient balance to exercise remote rejection")

        response = self._timed(
            "transaction-create",
            await self.client.create_transaction(ctx.wallet_id, spec, ctx.session.token),
            self._create_ceiling_ms,
        )

        transaction_id = response.field("transactionId") if response.ok else None
        result = TransactionResult(
            spec=spec,
            transaction_id=transaction_id,
            create_response=response,
            business_validation=business,
        )
        if transaction_id:
            ctx.transactions[transaction_id] = result
            logger.info("Transaction %s created (%s)", transaction_id, response.field("status"))
        else:
            logger.info("Transaction create returned HTTP %d", response.status_code)
        return result

    async def await_completion(
        self,
        ctx: ScenarioContext,
        transaction_id: str,
        max_wait: float | None = None,
        last: ApiResponse | None = None,
    ) -> ApiResponse:
        """
        Poll until the transaction is terminal.  Returns ``last`` at once when
        it is already terminal.  When ``max_wait`` elapses the last observed
        response is returned as-is (soft timeout); a non-2xx fetch is
        returned immediately.
        """
        if _is_terminal(last):
            return last

        max_wait = self.config.timeouts.transaction_completion if max_wait is None else max_wait
        interval = self.config.timeouts.poll_interval
        loop = asyncio.get_running_loop()
        started = loop.time()
        attempts = 0

        while True:
            attempts += 1
            latest = self._timed(
                "transaction-fetch",
                await self.client.get_transaction(ctx.wallet_id, transaction_id, ctx.session.token),
            )

            if not latest.ok:
                logger.warning("Polling %s returned HTTP %d", transaction_id, latest.status_code)
                return latest
            if _is_terminal(latest):
                logger.info(
                    "Transaction %s finished: %s (after %d polls)",
                    transaction_id, latest.field("outcome"), attempts,
                )
                return latest
            if loop.time() - started + interval > max_wait:
                logger.warning(
                    "Transaction %s still %s after %.1fs; returning last observed state",
                    transaction_id, latest.field("status"), loop.time() - started,
                )
                return latest

            logger.debug("Transaction %s is %s, polling again", transaction_id, latest.field("status"))
            await asyncio.sleep(interval)

    async def process_transaction(
        self,
        spec: Any,
        ctx: ScenarioContext,
        options: SubmitOptions | None = None,
    ) -> TransactionResult:
        """Submit, optionally wait, and attach a validation report."""
        options = options or SubmitOptions()
        result = await self.submit(spec, ctx, options)
        if result.locally_rejected:
            return result

        checks: list[ValidationResult] = []
        created = result.create_response
        if options.validate_schema:
            checks.append(self._check_schema(spec, "transaction-request"))
            if created.ok:
                checks.append(self._check_schema(created.body, "transaction-response"))
        if result.business_validation is not None:
            checks.append(result.business_validation)

        if result.transaction_id:
            if options.wait_for_completion and not _is_terminal(created):
                final = await self.await_completion(ctx, result.transaction_id, options.max_wait, created)
                result.final_response = final
                result.timed_out = final.ok and not _is_terminal(final)
                if options.validate_schema and final.ok:
                    checks.append(self._check_schema(final.body, "transaction"))
            checks.append(check_transaction_state(result.latest.body))

        if isinstance(spec, Mapping):
            checks.append(check_debit_currency(spec, ctx.wallet))

        result.report = ValidationReport(results=checks)
        summary = result.report.summary
        logger.info(
            "Transaction %s: %d/%d checks passed",
            result.transaction_id or "(not created)", summary["passed"], summary["total_checks"],
        )
        return result

    async def verify_balance_update(
        self,
        prior_wallet: Mapping[str, Any],
        spec: Mapping[str, Any],
        result: TransactionResult,
        ctx: ScenarioContext,
    ) -> ValidationResult | None:
        """Compare a fresh wallet against ``prior_wallet``; ``None`` unless approved."""
        if not result.approved:
            return None
        post_wallet = await self.refresh_wallet(ctx)
        check = check_balance_update(prior_wallet, post_wallet, spec, self.config.rules.balance_tolerance)
        if check.valid:
            logger.debug("Balance update verified for %s", result.transaction_id)
        else:
            logger.warning("Balance check failed for %s: %s", result.transaction_id, "; ".join(check.errors))
        return check

    # ── batches and scenarios ───────────────────────────────────────────
    async def run_batch(
        self,
        specs: Sequence[dict[str, Any] | TransactionTemplate],
        ctx: ScenarioContext,
        options: BatchOptions | None = None,
    ) -> BatchResult:
        """
        Run specs (templates are filled first) under the batch's order policy.

        sequential: one at a time, wallet refreshed before each step, balance
                    verified after each approved step
        unordered:  all submitted concurrently, no refresh and no polling;
                    only distinct identifiers are guaranteed
        """
        options = options or BatchOptions()
        resolved = self.generator.resolve_steps(list(specs))
        batch = BatchResult(order_policy=options.order_policy)
        submit_options = SubmitOptions(
            wait_for_completion=options.wait_for_completion,
            validate_schema=options.validate_each,
            validate_business_rules=options.validate_each,
            allow_insufficient_balance=options.allow_insufficient_balance,
        )

        if options.order_policy is OrderPolicy.UNORDERED:
            submit_options.wait_for_completion = False
            batch.results = list(await asyncio.gather(
                *(self.process_transaction(spec, ctx, submit_options) for spec in resolved)
            ))
        else:
            for index, spec in enumerate(resolved):
                if index and options.inter_step_delay > 0:
                    await asyncio.sleep(options.inter_step_delay)
                prior_wallet = await self.refresh_wallet(ctx)
                result = await self.process_transaction(spec, ctx, submit_options)
                batch.results.append(result)
                if options.validate_each:
                    check = await self.verify_balance_update(prior_wallet, spec, result, ctx)
                    if check is not None:
                        batch.balance_checks.append(check)

        if not batch.ids_unique:
            logger.warning("Batch produced duplicate transaction ids: %s", batch.transaction_ids)
        logger.info(
            "Batch (%s) finished: %d/%d accepted",
            options.order_policy.value, len(batch.successful), len(batch.results),
        )
        return batch

    async def run_scenario(
        self,
        name: str | ScenarioName,
        ctx: ScenarioContext,
        options: BatchOptions | None = None,
        size: int | None = None,
    ) -> BatchResult:
        """Resolve a named scenario; raises ``UnknownScenarioError`` for unknown names."""
        specs = self.generator.generate_scenario(name, size)
        label = name.value if isinstance(name, ScenarioName) else name
        logger.info("Running scenario '%s' with %d steps", label, len(specs))
        return await self.run_batch(specs, ctx, options)

    # ── composite tests ─────────────────────────────────────────────────
    async def performance_test(
        self,
        spec: dict[str, Any],
        ctx: ScenarioContext,
        iterations: int = 5,
        pause: float = 0.5,
    ) -> DurationStats | None:
        """Repeated create calls without waiting; stats over create durations."""
        options = SubmitOptions(wait_for_completion=False, validate_business_rules=False)
        durations: list[float] = []
        for i in range(iterations):
            if i and pause > 0:
                await asyncio.sleep(pause)
            result = await self.submit(spec, ctx, options)
            durations.append(result.create_response.duration_ms)
            logger.debug("Performance iteration %d: %.1fms", i + 1, durations[-1])

        stats = calculate_stats(durations)
        if stats is not None:
            logger.info(
                "Performance: avg %.1fms, min %.1fms, max %.1fms, median %.1fms over %d calls",
                stats.avg, stats.min, stats.max, stats.median, stats.total,
            )
        return stats

    async def negative_test(self, kind: InvalidationKind | str, ctx: ScenarioContext) -> NegativeOutcome:
        """Send an invalid-by-construction payload straight to the service."""
        kind = InvalidationKind(kind)
        payload = self.generator.generate_invalid_transaction(kind)
        response = self._timed(
            "negative-test",
            await self.client.create_transaction(ctx.wallet_id, payload, ctx.session.token),
        )

        error_schema = None
        if response.ok:
            logger.warning("Invalid payload (%s) was accepted with HTTP %d", kind.value, response.status_code)
        else:
            error_schema = self._check_schema(response.body, "error")
            logger.info("Invalid payload (%s) rejected with HTTP %d", kind.value, response.status_code)
        return NegativeOutcome(kind=kind, payload=payload, response=response, error_schema=error_schema)

    async def run_workflow(
        self,
        scenario: str | ScenarioName,
        username: str | None = None,
        password: str | None = None,
        options: BatchOptions | None = None,
    ) -> WorkflowReport:
        """wakeup → session → scenario → final wallet → transaction list."""
        await self.wake_up()
        ctx = await self.open_session(username, password)
        batch = await self.run_scenario(scenario, ctx, options)

        final_wallet = await self.refresh_wallet(ctx)
        wallet_schema = self._check_schema(final_wallet, "wallet")

        listing = self._timed(
            "transaction-list",
            await self.client.list_transactions(ctx.wallet_id, ctx.session.token),
        )
        listing.raise_for_failure()
        list_schema = self._check_schema(listing.body, "transaction-list")

        report = WorkflowReport(
            scenario=scenario.value if isinstance(scenario, ScenarioName) else scenario,
            batch=batch,
            final_wallet=final_wallet,
            wallet_schema=wallet_schema,
            transaction_list_schema=list_schema,
            total_count=listing.field("totalCount") or 0,
        )
        logger.info("Workflow '%s' finished: valid=%s", report.scenario, report.valid)
        return report
