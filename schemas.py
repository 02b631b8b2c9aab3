from typing import Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class InvalidReportParameter(ValueError):
    pass


class ReportParams(BaseModel):
    model_config = ConfigDict(extra="forbid")


class YearOverYearParams(ReportParams):
    years_to_compare: int = Field(2, ge=1, le=50)


class AnomalyParams(ReportParams):
    threshold: float = Field(2, gt=0, le=100)


class RecurringParams(ReportParams):
    min_occurrences: int = Field(3, ge=1, le=1000)


class TaxYearParams(ReportParams):
    year: int = Field(..., ge=1970, le=3000)


class UncategorizedParams(ReportParams):
    limit: int = Field(500, ge=1, le=5000)


class DuplicateParams(ReportParams):
    sensitivity: Literal["high", "medium", "low"] = "medium"


class MonthlyComparisonParams(ReportParams):
    month: str = Field(..., pattern=r"^\d{4}-(0[1-9]|1[0-2])$")


ParamsT = TypeVar("ParamsT", bound=ReportParams)


def parse_params(model: type[ParamsT], **values: object) -> ParamsT:
    """Validate report parameters, dropping ``None`` so defaults apply."""
    try:
        return model(**{k: v for k, v in values.items() if v is not None})
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        raise InvalidReportParameter(problems) from exc
