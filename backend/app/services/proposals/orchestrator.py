"""
orchestrator.py — Proposal Generation Orchestrator

Purpose:
- Handle one "generate proposal version" request end to end:

    Authenticate → ResolveTenant&Role → CheckIdempotency → GatherContext →
    EnforceInvariants → Compute → Persist(atomic version) →
    PersistGranular(best-effort) → AuditLog → Respond

- Failures are terminal per request; nothing is retried here.

Trust model:
- The tariff group, precision, fee percent and tariff provenance are always
  re-derived from platform data. Advisory caller values are ignored.

Coordination points:
- Version numbers come from a single atomic counter call on the store.
- The (tenant, idempotency_key) uniqueness constraint settles duplicate
  submissions: a request that loses the insert race re-reads and returns
  the winner's version.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from app.core.config import Settings
from app.core.errors import (
    INVALID_INPUTS,
    AuthorizationError,
    BusinessRuleViolation,
    IdempotencyConflict,
    InvalidRequestError,
    NotFoundError,
    PersistenceError,
    ProposalConflict,
)
from app.core.logging import get_logger
from app.core.security import resolve_caller
from app.services.engine import ENGINE_VERSION
from app.services.engine.expressions import build_context, evaluate_custom_variables
from app.services.engine.fee_schedule import FeeSchedule
from app.services.engine.hashing import calc_hash
from app.services.engine.scenarios import ScenarioInput, ScenarioType, calc_scenario
from app.services.engine.series import calc_series_25
from app.services.platform.store import ProposalStore, Row
from app.services.proposals import audit
from app.services.proposals.context import GenerationContext, gather_context
from app.services.proposals.granular import PersistOutcome, persist_granular
from app.services.proposals.invariants import (
    Precision,
    PrecisionDecision,
    TariffGroup,
    enforce_estimate_acceptance,
    enforce_required,
    enforce_single_group,
    resolve_precision,
)
from app.services.proposals.pricing import (
    build_calc_inputs,
    price_proposal,
    resolve_premises,
    resolve_tariff_basis,
    summarize_technical,
)
from app.services.proposals.schemas import GenerateProposalRequest, GenerateProposalResponse
from app.services.proposals.snapshot import (
    FeeRuleContext,
    ProposalSnapshot,
    TariffContext,
    TaxContext,
)

logger = get_logger(__name__)

DEFAULT_CASH_SCENARIO_NAME = "À vista"


@dataclass
class GenerationResult:
    response: GenerateProposalResponse
    snapshot: Optional[ProposalSnapshot] = None
    persist_outcome: Optional[PersistOutcome] = None


@dataclass(frozen=True)
class _Caller:
    user_id: str
    tenant_id: str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _opt_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def response_from_version(row: Row, idempotent: bool) -> GenerateProposalResponse:
    snapshot = row.get("snapshot") or {}
    return GenerateProposalResponse(
        success=True,
        idempotent=idempotent,
        proposal_id=str(row["proposta_id"]),
        version_id=str(row["id"]),
        version_number=int(row["versao_numero"]),
        total_value=float(row["valor_total"]),
        payback_months=int(row["payback_meses"]),
        monthly_savings=float(row["economia_mensal"]),
        npv=row.get("vpl"),
        irr=row.get("tir"),
        payback_years=row.get("payback_anos"),
        engine_version=row.get("engine_version"),
        calc_hash=row.get("calc_hash"),
        scenario_count=len(snapshot.get("scenarios") or []),
    )


class ProposalGenerator:
    """
    Stateless per-request pipeline. Holds only its collaborators: the
    platform store, explicit settings and a clock.
    """

    def __init__(
        self,
        store: ProposalStore,
        settings: Settings,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self._clock = clock or _utcnow

    # ------------------------------------------------------------------ #
    async def generate(
        self,
        authorization: Optional[str],
        request: GenerateProposalRequest,
    ) -> GenerationResult:
        identity = resolve_caller(authorization, self._settings)
        if not request.idempotency_key.strip():
            raise InvalidRequestError("idempotency_key must not be blank")
        caller = await self._resolve_tenant(identity.user_id)

        existing = await self._store.find_version_by_idempotency_key(caller.tenant_id, request.idempotency_key)
        if existing:
            logger.info("Idempotent replay for key %s → version %s", request.idempotency_key, existing["id"])
            return GenerationResult(response=response_from_version(existing, idempotent=True))

        now = self._clock()
        context = await gather_context(
            self._store, request, caller.tenant_id, caller.user_id, now.year, self._settings
        )

        try:
            group = self._enforce_invariants(request)
            precision = resolve_precision(context.tariff)
            enforce_estimate_acceptance(precision, request.aceite_estimativa)
            snapshot = self._compute(request, group, context, precision, now)
        except BusinessRuleViolation as exc:
            logger.info("Generation rejected (%s): %s", exc.code, exc.message)
            await audit.write_audit_entry(
                self._store,
                tenant_id=caller.tenant_id,
                user_id=caller.user_id,
                action=audit.ACTION_REJECTED,
                at=now,
                details={
                    "error": exc.code,
                    "message": exc.message,
                    "missing": exc.missing,
                    "lead_id": request.lead_id,
                    "idempotency_key": request.idempotency_key,
                },
            )
            raise

        proposal_id = await self._ensure_proposal(request, caller, context)
        version_number = await self._store.next_version_number(proposal_id)
        row = self._version_row(request, caller, proposal_id, version_number, snapshot, now)

        try:
            version = await self._store.insert_version(row)
        except IdempotencyConflict:
            winner = await self._store.find_version_by_idempotency_key(caller.tenant_id, request.idempotency_key)
            if not winner:
                raise PersistenceError("Idempotency conflict but no existing version found")
            logger.info("Lost idempotency race for key %s → version %s", request.idempotency_key, winner["id"])
            return GenerationResult(response=response_from_version(winner, idempotent=True))

        version_id = str(version["id"])
        logger.info("Version %s (#%s) committed for proposal %s", version_id, version_number, proposal_id)

        outcome = await persist_granular(self._store, snapshot, version_id, caller.tenant_id)
        if not outcome.complete:
            logger.warning(
                "Version %s committed with %s granular failure(s)", version_id, len(outcome.denormalized_failures)
            )

        await audit.write_audit_entry(
            self._store,
            tenant_id=caller.tenant_id,
            user_id=caller.user_id,
            action=audit.ACTION_GENERATED,
            at=now,
            record_id=version_id,
            details=self._audit_details(snapshot, outcome),
        )

        return GenerationResult(
            response=response_from_version(version, idempotent=False),
            snapshot=snapshot,
            persist_outcome=outcome,
        )

    # ------------------------------------------------------------------ #
    # Stages
    async def _resolve_tenant(self, user_id: str) -> _Caller:
        profile, roles = await asyncio.gather(
            self._store.get_profile(user_id),
            self._store.get_user_roles(user_id),
        )
        if not profile or not profile.get("tenant_id") or not profile.get("ativo"):
            raise AuthorizationError("User is inactive or has no tenant")

        tenant_id = str(profile["tenant_id"])
        tenant = await self._store.get_tenant(tenant_id)
        if not tenant or tenant.get("status") != "active":
            raise AuthorizationError("Tenant is suspended or inactive")

        if not set(roles) & set(self._settings.ALLOWED_ROLES):
            raise AuthorizationError("User is not allowed to generate proposals")
        return _Caller(user_id=user_id, tenant_id=tenant_id)

    @staticmethod
    def _enforce_invariants(request: GenerateProposalRequest) -> TariffGroup:
        # grouping rules run before completeness
        if request.ucs:
            group = enforce_single_group(request.ucs)
            enforce_required(request)
            return group
        enforce_required(request)  # raises: zero consumption without points
        return enforce_single_group(request.ucs)

    def _compute(
        self,
        request: GenerateProposalRequest,
        group: TariffGroup,
        context: GenerationContext,
        precision: PrecisionDecision,
        now: datetime,
    ) -> ProposalSnapshot:
        # out-of-range inputs surface as ValueError or overflow anywhere in the math
        try:
            return self._build_snapshot(request, group, context, precision, now)
        except (ValueError, ArithmeticError) as exc:
            raise BusinessRuleViolation(f"Calculation inputs out of range: {exc}", code=INVALID_INPUTS) from exc

    def _build_snapshot(
        self,
        request: GenerateProposalRequest,
        group: TariffGroup,
        context: GenerationContext,
        precision: PrecisionDecision,
        now: datetime,
    ) -> ProposalSnapshot:
        settings = self._settings
        totals = price_proposal(request)
        premises = resolve_premises(request, context, settings)
        basis = resolve_tariff_basis(context, precision, settings)
        technical = summarize_technical(request, group, context, basis, settings)

        fee_schedule = context.fee.schedule if group is TariffGroup.B else FeeSchedule.zero(now.year)
        calc_inputs = build_calc_inputs(totals, technical, premises, basis, fee_schedule)

        calc = calc_series_25(calc_inputs)
        scenarios = [calc_scenario(calc_inputs, s) for s in self._scenario_inputs(request, totals.total_value)]

        variables = []
        if not request.skip_variaveis_custom and context.custom_variables:
            variables = evaluate_custom_variables(
                context.custom_variables,
                build_context({
                    "valor_total": totals.total_value,
                    "custo_kit": totals.kit_cost,
                    "custo_servicos": totals.services_cost,
                    "potencia_kwp": technical.installed_kwp,
                    "consumo_total_kwh": technical.total_consumption_kwh,
                    "geracao_mensal_kwh": technical.monthly_generation_kwh,
                    "economia_mensal": technical.monthly_savings,
                    "economia_anual": calc.first_year_savings,
                    "economia_25_anos": calc.total_25yr_savings,
                    "payback_meses": calc.payback_months,
                    "payback_anos": calc.payback_years,
                    "vpl": calc.npv,
                    "tir": calc.irr_percent,
                    "tarifa_media": basis.avg_tariff,
                    "fio_b_percentual": context.fee.current_percent,
                    "num_ucs": len(request.ucs),
                }),
            )

        echoes = {
            "consumption_points": [p.model_dump(mode="json") for p in request.ucs],
            "kit_items": [i.model_dump(mode="json") for i in request.itens],
            "services": [s.model_dump(mode="json") for s in request.servicos],
            "commercial_terms": request.venda.model_dump(mode="json"),
            "payment_options": [o.model_dump(mode="json") for o in request.pagamento_opcoes],
        }
        references = {
            "lead_id": request.lead_id,
            "projeto_id": request.projeto_id,
            "cliente_id": request.cliente_id,
            "template_id": request.template_id,
            "consultor_id": _opt_str((context.consultant or {}).get("id")),
        }
        premises_data = asdict(premises)

        digest = calc_hash({
            "engine_version": ENGINE_VERSION,
            "tariff_group": group.value,
            "calc_inputs": calc_inputs,
            "tariff": asdict(basis),
            "fee_source": context.fee.source,
            "precision": precision.precision.value,
            "premises": premises_data,
            "references": references,
            "custom_variable_definitions": [
                {"nome": d.get("nome"), "expressao": d.get("expressao")} for d in context.custom_variables
            ],
            **echoes,
        })

        tax = context.tax or {}
        sync = context.tariff_sync or {}
        primary_state = request.ucs[0].estado if request.ucs else None

        return ProposalSnapshot(
            engine_version=ENGINE_VERSION,
            calc_hash=digest,
            generated_at=now,
            tariff_group=group.value,
            fee_rule=FeeRuleContext(
                version=fee_schedule.version,
                base_year=fee_schedule.base_year,
                applied_percent=technical.fee_fraction * 100,
                current_year_percent=context.fee.current_percent,
                source=context.fee.source if group is TariffGroup.B else "grupo_a_sem_fio_b",
                steps={str(s.year): s.percent for s in sorted(fee_schedule.steps, key=lambda s: s.year)},
                precision=precision.precision.value,
                precision_reason=precision.reason,
                estimate_accepted_at=now if precision.precision is Precision.ESTIMATED else None,
            ),
            tax=TaxContext(
                state=primary_state,
                icms_rate=float(tax.get("aliquota_icms", settings.DEFAULT_ICMS_RATE)),
                scee_exemption=bool(tax.get("possui_isencao_scee", False)),
                exemption_percent=float(tax.get("percentual_isencao", 0) or 0),
            ),
            tariff=TariffContext(
                avg_tariff_kwh=basis.avg_tariff,
                fee_tariff_kwh=basis.fee_tariff,
                provenance=basis.provenance,
                tariff_id=_opt_str(basis.tariff_id),
                valid_from=_opt_str(basis.valid_from),
                sync_run_id=_opt_str(sync.get("id")),
                sync_finished_at=_opt_str(sync.get("finished_at")),
            ),
            technical=asdict(technical),
            premises=premises_data,
            consumption_points=echoes["consumption_points"],
            kit_items=echoes["kit_items"],
            services=echoes["services"],
            commercial_terms=echoes["commercial_terms"],
            commercial_totals=asdict(totals),
            references=references,
            calc=calc,
            scenarios=scenarios,
            custom_variables=variables,
        )

    @staticmethod
    def _scenario_inputs(request: GenerateProposalRequest, total_value: float) -> List[ScenarioInput]:
        if not request.pagamento_opcoes:
            return [ScenarioInput(name=DEFAULT_CASH_SCENARIO_NAME, type=ScenarioType.CASH, principal=total_value)]
        return [
            ScenarioInput(
                name=option.nome,
                type=option.tipo,
                principal=option.investimento if option.investimento is not None else total_value,
                down_payment=option.entrada,
                monthly_rate_pct=option.taxa_mensal,
                installment_count=option.num_parcelas,
                installment_amount=option.valor_parcela,
                financier_id=option.financiador_id,
            )
            for option in request.pagamento_opcoes
        ]

    async def _ensure_proposal(
        self,
        request: GenerateProposalRequest,
        caller: _Caller,
        context: GenerationContext,
    ) -> str:
        existing = await self._store.find_proposal(caller.tenant_id, request.lead_id, request.projeto_id)
        if existing:
            return str(existing["id"])

        lead = await self._store.get_lead(caller.tenant_id, request.lead_id)
        if not lead:
            raise NotFoundError("Lead not found for this tenant")

        code = lead.get("lead_code")
        try:
            created = await self._store.insert_proposal({
                "tenant_id": caller.tenant_id,
                "lead_id": request.lead_id,
                "projeto_id": request.projeto_id,
                "cliente_id": request.cliente_id,
                "consultor_id": _opt_str((context.consultant or {}).get("id")),
                "template_id": request.template_id,
                "titulo": f"Proposta {code or ''} - {lead.get('nome') or ''}".replace("  ", " ").strip(),
                "codigo": f"PROP-{code}" if code else None,
                "versao_atual": 0,
                "created_by": caller.user_id,
            })
        except ProposalConflict:
            winner = await self._store.find_proposal(caller.tenant_id, request.lead_id, request.projeto_id)
            if not winner:
                raise PersistenceError("Proposal conflict but no existing proposal found")
            logger.info("Lost proposal creation race for lead %s → proposal %s", request.lead_id, winner["id"])
            return str(winner["id"])
        return str(created["id"])

    def _version_row(
        self,
        request: GenerateProposalRequest,
        caller: _Caller,
        proposal_id: str,
        version_number: int,
        snapshot: ProposalSnapshot,
        now: datetime,
    ) -> Dict[str, Any]:
        calc = snapshot.calc
        validity = self._settings.PROPOSAL_VALIDITY_DAYS
        return {
            "tenant_id": caller.tenant_id,
            "proposta_id": proposal_id,
            "versao_numero": version_number,
            "status": "generated",
            "grupo": snapshot.tariff_group,
            "potencia_kwp": request.potencia_kwp,
            "valor_total": snapshot.commercial_totals["total_value"],
            "economia_mensal": snapshot.technical["monthly_savings"],
            "payback_meses": calc.payback_months,
            "payback_anos": calc.payback_years,
            "vpl": calc.npv,
            "tir": calc.irr_percent,
            "calc_hash": snapshot.calc_hash,
            "engine_version": snapshot.engine_version,
            "validade_dias": validity,
            "valido_ate": (now + timedelta(days=validity)).date().isoformat(),
            "snapshot": snapshot.model_dump(mode="json"),
            "snapshot_locked": True,
            "idempotency_key": request.idempotency_key,
            "observacoes": request.observacoes,
            "gerado_por": caller.user_id,
            "gerado_em": now.isoformat(),
        }

    @staticmethod
    def _audit_details(snapshot: ProposalSnapshot, outcome: PersistOutcome) -> Dict[str, Any]:
        fee = snapshot.fee_rule
        return {
            "precisao": fee.precision,
            "precisao_motivo": fee.precision_reason,
            "regra": fee.source,
            "fio_b_percentual": fee.applied_percent,
            "tarifa_origem": snapshot.tariff.provenance,
            "tarifa_id": snapshot.tariff.tariff_id,
            "sync_run_id": snapshot.tariff.sync_run_id,
            "schedule_version": fee.version,
            "aceite_estimativa_em": fee.estimate_accepted_at,
            "calc_hash": snapshot.calc_hash,
            "granular_failures": [asdict(f) for f in outcome.denormalized_failures],
        }
