"""
Plan Catalog - The fixed set of token bundles that can be purchased.

The catalog is closed: four plans, immutable, looked up by id.
"""

from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType

_STANDARD_FEES = "Cliente solicita contato: 3 moedas\nProfissional escolhe serviço: 5 moedas"
_REDUCED_FEES = "Cliente solicita contato: 2 moedas\nProfissional escolhe serviço: 4 moedas"


@dataclass(frozen=True)
class Plan:
    """A purchasable token bundle."""

    id: str
    name: str
    amount: Decimal  # BRL charged for the bundle
    tokens: int
    rate: Decimal  # BRL per token, as advertised
    benefits: tuple[str, ...]
    fee_schedule: str

    def __post_init__(self) -> None:
        """Validate plan constraints."""
        if self.amount <= 0:
            raise ValueError(f"Plan amount must be positive: {self.amount}")
        if self.tokens <= 0:
            raise ValueError(f"Plan tokens must be positive: {self.tokens}")

    @property
    def description(self) -> str:
        """Charge description shown on the payer's bank statement."""
        return f"Compra de {self.tokens} tokens - Plano {self.name}"


PLANS: MappingProxyType[str, Plan] = MappingProxyType(
    {
        "essencial": Plan(
            id="essencial",
            name="ESSENCIAL",
            amount=Decimal("25.00"),
            tokens=25,
            rate=Decimal("1.00"),
            benefits=(),
            fee_schedule=_STANDARD_FEES,
        ),
        "pro": Plan(
            id="pro",
            name="PRO",
            amount=Decimal("60.00"),
            tokens=75,
            rate=Decimal("0.80"),
            benefits=(),
            fee_schedule=_STANDARD_FEES,
        ),
        "vip": Plan(
            id="vip",
            name="VIP",
            amount=Decimal("100.00"),
            tokens=150,
            rate=Decimal("0.67"),
            benefits=(
                "Ser listado nas indicações do sistema",
                "Aparecer no destaque de sua categoria",
            ),
            fee_schedule=_REDUCED_FEES,
        ),
        "pirituba": Plan(
            id="pirituba",
            name="PIRITUBA",
            amount=Decimal("150.00"),
            tokens=300,
            rate=Decimal("0.50"),
            benefits=(
                "Ser listado nas indicações do sistema",
                "Aparecer no destaque na página inicial",
                "Aparecer no destaque de sua categoria",
                'Participar da opção "Me surpreenda"',
            ),
            fee_schedule=_REDUCED_FEES,
        ),
    }
)


def get_plan(plan_id: str | None) -> Plan | None:
    """Look up a plan by id (case-insensitive). Returns None when unknown."""
    if not plan_id:
        return None
    return PLANS.get(plan_id.strip().lower())
