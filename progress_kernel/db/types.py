"""
Module: progress_kernel.db.types
Responsibility: Annotated column type aliases for hours, weights and
    milestone values.  Centralizes precision so every model uses identical
    definitions.
Architecture position: Kernel > DB.  May be imported by models/ and
    services/.  MUST NOT import from any of those.

Invariants enforced:
    - No floats.  Hours, weights and values are Decimal end to end.
"""

from decimal import Decimal
from typing import Annotated

from sqlalchemy import Numeric, String

# Labor hours: 38 digits, 9 decimal places
Hours = Annotated[Decimal, Numeric(38, 9)]

# Milestone weight on the 0-100 scale
Weight = Annotated[Decimal, Numeric(9, 4)]

# Milestone completion value on the 0-100 scale
MilestoneValue = Annotated[Decimal, Numeric(9, 4)]

# Short identifier strings
ShortCode = Annotated[str, String(50)]

# Long text for reasons and descriptions
LongText = Annotated[str, String(4000)]
