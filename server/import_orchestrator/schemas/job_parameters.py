"""Well-known job parameters passed from the scheduler to a job run."""
from __future__ import annotations

import hashlib
import json
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from import_orchestrator.core.exceptions import JobParametersInvalidError

WST_IDEN = "wstIden"
START_DATE = "startDate"
FINAL_WORK = "finalWork"


class JobParameters(BaseModel):
    """Validated parameters of one job run."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="allow")

    wst_iden: int = Field(alias=WST_IDEN, strict=True, description="WorkStatus being processed")
    start_date: int = Field(alias=START_DATE, strict=True, description="Launch time in epoch millis")
    final_work: bool = Field(
        default=True,
        alias=FINAL_WORK,
        description="False while further works of the same request are still to run",
    )

    @classmethod
    def from_mapping(cls, parameters: Mapping[str, Any]) -> "JobParameters":
        """Validate raw parameters, raising ``JobParametersInvalidError`` on any problem."""
        try:
            return cls.model_validate(dict(parameters))
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or 'parameters'}: {error['msg']}"
                for error in exc.errors()
            )
            raise JobParametersInvalidError(problems) from exc

    def as_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)

    def identity_key(self) -> str:
        """Digest identifying the job instance these parameters describe."""
        canonical = json.dumps(self.as_dict(), sort_keys=True, default=str)
        return hashlib.md5(canonical.encode("utf-8")).hexdigest()
