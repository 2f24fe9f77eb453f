"""lean-intel utility modules.

- logging: Human/verbose/JSON log output
- redaction: Secret and PII redaction before prompting
- ignore: Built-in and .leanignore exclusion rules
- estimate: Pre-run cost estimation
- output_validator: Checks on generated markdown
"""

from lean_intel.utils.estimate import CostEstimate, estimate_cost
from lean_intel.utils.ignore import IgnoreRules
from lean_intel.utils.logging import get_logger, setup_logging
from lean_intel.utils.output_validator import validate_markdown
from lean_intel.utils.redaction import ContentRedactor

__all__ = [
    "ContentRedactor",
    "CostEstimate",
    "IgnoreRules",
    "estimate_cost",
    "get_logger",
    "setup_logging",
    "validate_markdown",
]
