"""Per-token model pricing table.

PricingTable maps model names onto a small set of pricing tiers and
converts token counts into USD cost.  Model names are matched
case-insensitively by substring, trying the most expensive tier first so
that a name such as ``"claude-opus-sonnet-proxy"`` always resolves to the
opus tier.  Names that match no tier fall back to the default tier, which is
the cheapest one unless configured otherwise.

Example
-------
>>> table = PricingTable()
>>> table.resolve("claude-3-opus-20240229").name
'opus'
>>> table.calculate_cost("opus", input_tokens=1_000_000, output_tokens=1_000_000)
90.0
"""
from __future__ import annotations

from dataclasses import dataclass

_TOKENS_PER_UNIT: int = 1_000_000


@dataclass(frozen=True)
class ModelTier:
    """Pricing for a single model tier.

    Attributes
    ----------
    name:
        Tier identifier, also the substring matched against model names.
    input_per_million:
        USD per one million input tokens.
    output_per_million:
        USD per one million output tokens.
    """

    name: str
    input_per_million: float
    output_per_million: float

    @property
    def blended_price(self) -> float:
        """Sum of input and output prices, used to order tiers."""
        return self.input_per_million + self.output_per_million


DEFAULT_TIERS: tuple[ModelTier, ...] = (
    ModelTier(name="haiku", input_per_million=0.25, output_per_million=1.25),
    ModelTier(name="sonnet", input_per_million=3.0, output_per_million=15.0),
    ModelTier(name="opus", input_per_million=15.0, output_per_million=75.0),
)


class PricingTable:
    """Static cost-per-token table keyed by model tier.

    Parameters
    ----------
    tiers:
        Tier definitions.  Order does not matter; tiers are sorted by
        blended price internally.
    default_tier:
        Name of the tier used when a model name matches no tier.  Defaults
        to the cheapest tier.

    Raises
    ------
    ValueError
        When ``tiers`` is empty or ``default_tier`` names an unknown tier.
    """

    def __init__(
        self,
        tiers: list[ModelTier] | tuple[ModelTier, ...] | None = None,
        default_tier: str | None = None,
    ) -> None:
        effective = list(tiers) if tiers is not None else list(DEFAULT_TIERS)
        if not effective:
            raise ValueError("PricingTable requires at least one model tier.")
        # Cheapest first.
        self._tiers: list[ModelTier] = sorted(effective, key=lambda t: t.blended_price)
        self._by_name: dict[str, ModelTier] = {t.name.lower(): t for t in self._tiers}

        if default_tier is None:
            self._default = self._tiers[0]
        else:
            try:
                self._default = self._by_name[default_tier.lower()]
            except KeyError:
                raise ValueError(
                    f"Unknown default tier '{default_tier}'. Known: {sorted(self._by_name)}"
                ) from None

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def resolve(self, model: str | None) -> ModelTier:
        """Return the tier a model name belongs to.

        Parameters
        ----------
        model:
            Free-form model identifier.  ``None`` or an empty string resolves
            to the default tier.
        """
        if not model:
            return self._default
        lowered = str(model).lower()
        for tier in reversed(self._tiers):
            if tier.name.lower() in lowered:
                return tier
        return self._default

    def get(self, name: str) -> ModelTier | None:
        """Return the tier with exactly this name, or ``None``."""
        return self._by_name.get(name.lower())

    def next_lower(self, tier: ModelTier) -> ModelTier | None:
        """Return the next cheaper tier, or ``None`` for the cheapest tier."""
        index = self._tiers.index(tier)
        return self._tiers[index - 1] if index > 0 else None

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def calculate_cost(self, model: str | None, input_tokens: int, output_tokens: int) -> float:
        """Convert token counts into USD cost for the given model."""
        tier = self.resolve(model)
        input_cost = (input_tokens / _TOKENS_PER_UNIT) * tier.input_per_million
        output_cost = (output_tokens / _TOKENS_PER_UNIT) * tier.output_per_million
        return input_cost + output_cost

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def tiers(self) -> list[ModelTier]:
        """All tiers, cheapest first."""
        return list(self._tiers)

    @property
    def lowest(self) -> ModelTier:
        """The cheapest tier."""
        return self._tiers[0]

    @property
    def highest(self) -> ModelTier:
        """The most expensive tier."""
        return self._tiers[-1]

    @property
    def default_tier(self) -> ModelTier:
        """The tier used for unmatched model names."""
        return self._default
