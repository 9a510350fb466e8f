from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models import AccountType, BudgetPeriodType
from periods import Period
from settings_store import validate_levels


class CurrencyIn(BaseModel):
    code: str = Field(..., min_length=3, max_length=3)
    name: str = Field(..., min_length=1, max_length=60)
    symbol: str = Field(default="", max_length=8)
    decimal_places: int = Field(default=2, ge=0, le=8)
    rate_micros: int = Field(default=1_000_000, gt=0)
    is_base: bool = False

    @field_validator("code")
    @classmethod
    def _upper_code(cls, value: str) -> str:
        return value.strip().upper()


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    currency_code: str = Field(..., min_length=3, max_length=3)
    parent_id: Optional[int] = None
    uuid: Optional[str] = Field(default=None, max_length=36)
    order: int = 0
    is_inactive: bool = False
    hide_on_home_page: bool = False

    @field_validator("name")
    @classmethod
    def _no_separator(cls, value: str) -> str:
        if ":" in value:
            raise ValueError("Account names cannot contain ':'")
        return value


class BudgetIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    period_type: BudgetPeriodType = BudgetPeriodType.monthly


class AccountFlagsIn(BaseModel):
    is_inactive: Optional[bool] = None
    hide_on_home_page: Optional[bool] = None


class BudgetItemIn(BaseModel):
    budget_id: int
    account_id: int
    year: int = Field(..., ge=1970, le=3000)
    month: int = Field(..., ge=1, le=12)
    amount_cents: int


class TransactionIn(BaseModel):
    account_id: int
    date: date
    amount_cents: int
    note: Optional[str] = Field(default=None, max_length=200)


class SettingsUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    budget_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    use_full_names: Optional[bool] = None
    warning_level: Optional[float] = None
    over_budget_level: Optional[float] = None
    period: Optional[Period] = None
    all_ancestors: Optional[bool] = None
    use_category_currency: Optional[bool] = None
    ignore_unbudgeted: Optional[bool] = None

    @field_validator("budget_name")
    @classmethod
    def _no_comma(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and "," in value:
            raise ValueError("Budget name cannot contain a comma")
        return value

    @model_validator(mode="after")
    def _levels_in_range(self) -> "SettingsUpdate":
        if self.warning_level is not None and self.over_budget_level is not None:
            validate_levels(self.warning_level, self.over_budget_level)
        return self

    def changes(self) -> dict[str, object]:
        return self.model_dump(exclude_none=True)


class PeriodIn(BaseModel):
    period: Period


class SelectedCategoriesIn(BaseModel):
    category_ids: list[str] = Field(default_factory=list)


class BudgetChoiceIn(BaseModel):
    budget_name: str = Field(..., min_length=1, max_length=100)


class BreakdownRowOut(BaseModel):
    category_id: str
    label: str
    indent: int
    show_amounts: bool
    spent: str
    percent: str
    remaining: str
    budget: str


class BarOut(BaseModel):
    category_id: str
    label: str
    spent_cents: int
    budget_cents: int
    progress: int
    status: str
    color: str
    percent: str
    spent: str
    remaining: str
    budget: str
    rows: list[BreakdownRowOut]


class BarsOut(BaseModel):
    budget_name: str
    period: str
    year: int
    start_month: int
    month_count: int
    notice: Optional[str] = None
    bars: list[BarOut]


class CategoryOut(BaseModel):
    category_id: str
    full_name: str
    indent: int
    selected: bool
    synthetic: bool
