"""Read-strategy selection.

The precedence between overlapping parameters is the contract of the read
endpoint, so it lives in one ordered table: the first rule whose predicate
matches decides the strategy and later rules are never consulted.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from loguru import logger

from sensorlogs.errors import ValidationError
from sensorlogs.query.params import (
    QueryRequest,
    MODE_LATEST, MODE_ROLLUP,
    PERIOD_DAY, PERIOD_WEEK, PERIOD_MONTH, PERIOD_NOW,
    VALUE_NONE,
)


class ReadMode(str, Enum):
    RANDOM_SAMPLE = "random_sample"
    MULTI_DEVICE_LATEST = "multi_device_latest"
    LATEST = "latest"
    ALL_PARAMETERS = "all_parameters"
    ALL_PARAMETERS_BY_MONTH = "all_parameters_by_month"
    LATEST_PER_PARAMETER = "latest_per_parameter"
    AGGREGATE_VALUE = "aggregate_value"
    DATE_SCOPED = "date_scoped"
    GENERIC_PERIOD = "generic_period"


@dataclass(frozen=True)
class Rule:
    name: str
    matches: Callable[[QueryRequest], bool]
    # None marks a rejecting rule
    mode: ReadMode | None
    message: str = ""


def _all_parameters_window(r: QueryRequest) -> bool:
    return not r.parameters and r.value_aggregate == VALUE_NONE and r.period == PERIOD_DAY


RULES: list[Rule] = [
    Rule("random_sample",
         lambda r: r.has_parameter_list and r.month is not None,
         ReadMode.RANDOM_SAMPLE),
    Rule("multi_device_latest",
         lambda r: r.has_device_list and r.mode == MODE_LATEST,
         ReadMode.MULTI_DEVICE_LATEST),
    Rule("latest",
         lambda r: r.mode == MODE_LATEST,
         ReadMode.LATEST),
    Rule("all_parameters_by_month",
         lambda r: _all_parameters_window(r) and r.month is not None,
         ReadMode.ALL_PARAMETERS_BY_MONTH),
    Rule("all_parameters",
         _all_parameters_window,
         ReadMode.ALL_PARAMETERS),
    Rule("latest_per_parameter",
         lambda r: r.period == PERIOD_NOW,
         ReadMode.LATEST_PER_PARAMETER),
    Rule("parameter_required",
         lambda r: not r.parameters,
         None,
         "parameter jenis diperlukan"),
    Rule("aggregate_value",
         lambda r: r.value_aggregate != VALUE_NONE
         and (r.mode == MODE_ROLLUP or r.period in (PERIOD_WEEK, PERIOD_MONTH)),
         ReadMode.AGGREGATE_VALUE),
    Rule("date_scoped",
         lambda r: r.date is not None,
         ReadMode.DATE_SCOPED),
    Rule("generic_period",
         lambda r: True,
         ReadMode.GENERIC_PERIOD),
]


def resolve_mode(request: QueryRequest) -> ReadMode:
    """Return the single read strategy for `request`, first matching rule wins."""
    for rule in RULES:
        if not rule.matches(request):
            continue
        if rule.mode is None:
            raise ValidationError(rule.message)
        logger.debug("Resolved read mode {} (rule {}) for device={}", rule.mode.value, rule.name, request.device_id)
        return rule.mode
    # the last rule always matches
    raise AssertionError("no read rule matched")
