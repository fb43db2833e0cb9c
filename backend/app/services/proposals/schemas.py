"""
schemas.py — Request / Response Schemas for Proposal Generation

Field names follow the CRM's wire contract (Portuguese keys) so the web
client posts its wizard state unchanged.

Notes:
- `grupo` is advisory only; the tariff group is re-derived from each
  consumption point's sub-group code.
- Required business fields (lead, power, consumption, kit cost) are
  optional here on purpose: their absence is reported by the orchestrator
  as `missing_required_variables` with every missing name at once, not as a
  schema error.
- Non-finite numbers are refused at parse time (`allow_inf_nan=False`).
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.services.engine.scenarios import ScenarioType


class _WireModel(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False, extra="ignore")


class ConsumptionPointIn(_WireModel):
    """One utility account / meter (UC)."""
    nome: Optional[str] = None
    subgrupo: Optional[str] = None  # e.g. "B1", "A4"
    estado: Optional[str] = None  # UF, e.g. "MG"
    concessionaria_id: Optional[str] = None
    tipo_fase: Literal["monofasico", "bifasico", "trifasico"] = "monofasico"
    consumo_mensal_kwh: float = Field(0.0, ge=0)


class PremisesIn(_WireModel):
    """Technical/financial premises; omitted fields fall back to tenant defaults."""
    inflacao_energetica: Optional[float] = Field(None, gt=-100)
    perda_eficiencia_anual: Optional[float] = Field(None, ge=0, lt=100)
    troca_inversor_anos: Optional[int] = Field(None, ge=0)
    troca_inversor_custo_pct: Optional[float] = Field(None, ge=0)
    vpl_taxa_desconto: Optional[float] = Field(None, gt=-100)


class KitItemIn(_WireModel):
    descricao: str
    quantidade: float = Field(ge=0)
    preco_unitario: float = Field(ge=0)
    categoria: Optional[str] = None
    fabricante: Optional[str] = None
    modelo: Optional[str] = None


class ServiceItemIn(_WireModel):
    descricao: str
    valor: float = Field(0.0, ge=0)
    incluso_no_preco: bool = True


class CommercialTermsIn(_WireModel):
    custo_comissao: float = Field(0.0, ge=0)
    custo_outros: float = Field(0.0, ge=0)
    margem_percentual: float = Field(0.0, ge=0)
    desconto_percentual: float = Field(0.0, ge=0, le=100)


class PaymentOptionIn(_WireModel):
    nome: str
    tipo: ScenarioType = ScenarioType.CASH
    investimento: Optional[float] = Field(None, ge=0)  # scenario price; proposal total when omitted
    entrada: float = Field(0.0, ge=0)
    taxa_mensal: float = Field(0.0, ge=0)
    num_parcelas: int = Field(0, ge=0)
    valor_parcela: float = Field(0.0, ge=0)
    financiador_id: Optional[str] = None


class GenerateProposalRequest(_WireModel):
    lead_id: Optional[str] = None
    projeto_id: Optional[str] = None
    cliente_id: Optional[str] = None
    grupo: Optional[str] = None
    template_id: Optional[str] = None
    potencia_kwp: Optional[float] = None
    ucs: List[ConsumptionPointIn] = Field(default_factory=list)
    premissas: Optional[PremisesIn] = None
    itens: List[KitItemIn] = Field(default_factory=list)
    servicos: List[ServiceItemIn] = Field(default_factory=list)
    venda: CommercialTermsIn = Field(default_factory=CommercialTermsIn)
    pagamento_opcoes: List[PaymentOptionIn] = Field(default_factory=list)
    observacoes: Optional[str] = None
    idempotency_key: str = Field(min_length=1)
    skip_variaveis_custom: bool = False
    aceite_estimativa: bool = False


class GenerateProposalResponse(BaseModel):
    success: bool = True
    idempotent: bool
    proposal_id: str
    version_id: str
    version_number: int
    total_value: float
    payback_months: int
    monthly_savings: float
    npv: Optional[float] = None
    irr: Optional[float] = None
    payback_years: Optional[int] = None
    engine_version: Optional[str] = None
    calc_hash: Optional[str] = None
    scenario_count: int = 0


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    message: str
    missing: Optional[List[str]] = None
