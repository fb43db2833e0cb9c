"""
Unit tests for context.py fee-schedule merging and pricing.py.
"""

import pytest

from app.services.proposals.context import (
    FEE_SOURCE_GLOBAL,
    FEE_SOURCE_STATUTORY,
    FEE_SOURCE_TENANT,
    FeeContext,
    GenerationContext,
    build_fee_schedule,
)
from app.services.proposals.invariants import TariffGroup, resolve_precision
from app.services.proposals.pricing import (
    price_proposal,
    resolve_premises,
    resolve_tariff_basis,
    summarize_technical,
)

from conftest import TENANT_ID, make_request


def make_context(settings, tariff=None, **overrides) -> GenerationContext:
    values = dict(
        fee=build_fee_schedule([], TENANT_ID, 2026, settings),
        tax=None,
        irradiation=None,
        tenant_premises=None,
        consultant=None,
        tariff=tariff,
        tariff_sync=None,
    )
    values.update(overrides)
    return GenerationContext(**values)


# -----------------------------------------------------------------------------
# Fee schedule sources
# -----------------------------------------------------------------------------

def test_statutory_schedule_when_no_rows(settings):
    fee = build_fee_schedule([], TENANT_ID, 2026, settings)
    assert fee.source == FEE_SOURCE_STATUTORY
    assert fee.current_percent == 60.0


def test_global_rows(settings):
    rows = [
        {"ano": 2026, "percentual_nao_compensado": 55.0, "tenant_id": None},
        {"ano": 2027, "percentual_nao_compensado": 70.0, "tenant_id": None},
    ]
    fee = build_fee_schedule(rows, TENANT_ID, 2026, settings)
    assert fee.source == FEE_SOURCE_GLOBAL
    assert fee.current_percent == 55.0


def test_tenant_rows_override_global_rows_for_same_year(settings):
    rows = [
        {"ano": 2026, "percentual_nao_compensado": 50.0, "tenant_id": TENANT_ID},
        {"ano": 2026, "percentual_nao_compensado": 60.0, "tenant_id": None},
        {"ano": 2027, "percentual_nao_compensado": 75.0, "tenant_id": None},
    ]
    fee = build_fee_schedule(rows, TENANT_ID, 2026, settings)
    assert fee.source == FEE_SOURCE_TENANT
    assert fee.current_percent == 50.0
    assert {s.year: s.percent for s in fee.schedule.steps} == {2026: 50.0, 2027: 75.0}


# -----------------------------------------------------------------------------
# Commercial totals
# -----------------------------------------------------------------------------

def test_price_with_margin_and_discount():
    request = make_request(
        servicos=[
            {"descricao": "Instalacao", "valor": 3000},
            {"descricao": "Monitoramento", "valor": 500, "incluso_no_preco": False},
        ],
        venda={"custo_comissao": 1000, "custo_outros": 500, "margem_percentual": 20, "desconto_percentual": 5},
    )
    totals = price_proposal(request)

    assert totals.kit_cost == 20000.0
    assert totals.services_cost == 3000.0
    assert totals.base_cost == 24500.0
    assert totals.margin_value == 4900.0
    assert totals.discount_value == 1470.0
    assert totals.total_value == 27930.0


# -----------------------------------------------------------------------------
# Premises / tariff / technical summary
# -----------------------------------------------------------------------------

def test_request_premises_win_with_settings_filling_gaps(settings):
    request = make_request(premissas={"inflacao_energetica": 8.0})
    premises = resolve_premises(request, make_context(settings), settings)

    assert premises.source == "request"
    assert premises.energy_inflation_pct == 8.0
    assert premises.discount_rate_pct == settings.DEFAULT_DISCOUNT_RATE_PCT


def test_tenant_premises_used_when_request_has_none(settings):
    context = make_context(settings, tenant_premises={"vpl_taxa_desconto": 12.0, "troca_inversor_anos": 10})
    premises = resolve_premises(make_request(), context, settings)

    assert premises.source == "tenant_defaults"
    assert premises.discount_rate_pct == 12.0
    assert premises.inverter_replacement_year == 10


def test_exact_tariff_basis(settings):
    tariff = {"id": "t1", "te_kwh": 0.35, "tusd_total_kwh": 0.5, "tusd_fio_b_kwh": 0.25, "origem": "aneel_sync"}
    basis = resolve_tariff_basis(make_context(settings, tariff), resolve_precision(tariff), settings)

    assert basis.avg_tariff == pytest.approx(0.85)
    assert basis.fee_tariff == 0.25
    assert basis.provenance == "aneel_sync"


def test_estimated_tariff_basis_uses_share_of_tusd(settings):
    tariff = {"te_kwh": 0.35, "tusd_total_kwh": 0.5, "origem": "manual"}
    basis = resolve_tariff_basis(make_context(settings, tariff), resolve_precision(tariff), settings)
    assert basis.fee_tariff == pytest.approx(0.5 * settings.FEE_TARIFF_SHARE)


def test_default_tariff_without_record(settings):
    basis = resolve_tariff_basis(make_context(settings), resolve_precision(None), settings)

    assert basis.avg_tariff == settings.DEFAULT_TARIFF_KWH
    assert basis.provenance == "premissa"


def test_technical_summary_group_b(settings):
    tariff = {"te_kwh": 0.35, "tusd_total_kwh": 0.5, "tusd_fio_b_kwh": 0.25}
    context = make_context(settings, tariff)
    basis = resolve_tariff_basis(context, resolve_precision(tariff), settings)
    technical = summarize_technical(make_request(), TariffGroup.B, context, basis, settings)

    assert technical.monthly_generation_kwh == 600.0
    assert technical.availability_kwh == 30.0
    assert technical.compensated_kwh == 600.0
    assert technical.fee_fraction == 0.6
    assert technical.monthly_savings == 420.0  # 600 * (0.85 - 0.25 * 0.6)


def test_technical_summary_group_a_has_no_fee(settings):
    tariff = {"te_kwh": 0.35, "tusd_total_kwh": 0.5, "tusd_fio_b_kwh": 0.25}
    context = make_context(settings, tariff)
    basis = resolve_tariff_basis(context, resolve_precision(tariff), settings)
    request = make_request(ucs=[{"subgrupo": "A4", "tipo_fase": "trifasico", "consumo_mensal_kwh": 2000}])
    technical = summarize_technical(request, TariffGroup.A, context, basis, settings)

    assert technical.fee_fraction == 0.0
    assert technical.monthly_savings == 510.0  # 600 * 0.85


def test_generation_capped_by_compensable_consumption(settings):
    context = make_context(settings, irradiation={"geracao_media_kwp_mes": 130})
    basis = resolve_tariff_basis(context, resolve_precision(None), settings)
    request = make_request(ucs=[{"subgrupo": "B1", "tipo_fase": "bifasico", "consumo_mensal_kwh": 350}])
    technical = summarize_technical(request, TariffGroup.B, context, basis, settings)

    assert technical.monthly_generation_kwh == 650.0
    assert technical.compensated_kwh == 300.0
