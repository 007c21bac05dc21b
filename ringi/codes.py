"""Application code catalog and lookup."""

from __future__ import annotations

import re
from typing import Dict, List, Optional

from .contracts import ApplicationCode
from .errors import ApplicationCodeNotFound
from .persistence import WorkflowRepository

# (id, code, name, description)
DEFAULT_APPLICATION_CODES = [
    ("code-exp", "EXP", "経費精算", "経費精算申請"),
    ("code-trp", "TRP", "交通費申請", "交通費申請"),
    ("code-lev", "LEV", "休暇申請", "休暇申請"),
    ("code-apl", "APL", "稟議申請", "稟議申請"),
    ("code-dly", "DLY", "日報", "日報"),
    ("code-wkr", "WKR", "週報", "週報"),
]

_CODE_ALIASES: Dict[str, List[str]] = {
    "EXP": [
        "EXPENSE", "EXPENSES", "EXPENSEREPORT", "EXPENSEREIMBURSEMENT",
        "EXPENSEFORM", "EXPENSEAPPLICATION", "EXPENSECLAIM", "KEIHISEISAN",
        "経費精算", "経費申請",
    ],
    "TRP": [
        "TRANSPORT", "TRANSPORTATION", "TRANSPORTEXPENSE", "TRAVEL",
        "TRAVELEXPENSE", "TRANSPORTFORM", "TRANSPORTAPPLICATION", "KOUTSUUHI",
        "交通費申請", "交通費精算", "旅費交通費",
    ],
    "LEV": [
        "LEAVE", "LEAVEAPPLICATION", "VACATION", "HOLIDAY", "KYUUKA",
        "休暇申請", "有給申請",
    ],
    "APL": ["APPROVAL", "APPROVALREQUEST", "RINGI", "稟議申請", "稟議"],
    "DLY": ["DAILY", "DAILYREPORT", "NIPPOU", "日報"],
    "WKR": ["WEEKLY", "WEEKLYREPORT", "SHUUHOU", "週報"],
}

_ALIAS_MAP: Dict[str, str] = {}
for _code, _aliases in _CODE_ALIASES.items():
    _ALIAS_MAP[_code] = _code
    _ALIAS_MAP[f"CODE{_code}"] = _code
    for _alias in _aliases:
        _ALIAS_MAP[_alias] = _code

_SEPARATORS = re.compile(r"[\s_-]+")


def normalize_form_code(raw: Optional[str]) -> Optional[str]:
    """Map a free-form code or alias to its canonical short code.

    >>> normalize_form_code("expense-report")
    'EXP'
    >>> normalize_form_code("unknown") is None
    True
    """
    if not raw:
        return None
    upper = raw.upper().strip()
    key = _SEPARATORS.sub("", upper)
    return _ALIAS_MAP.get(key) or _ALIAS_MAP.get(upper)


def default_application_codes() -> List[ApplicationCode]:
    return [
        ApplicationCode(id=code_id, code=code, name=name, description=description)
        for code_id, code, name, description in DEFAULT_APPLICATION_CODES
    ]


async def seed_application_codes(repository: WorkflowRepository) -> List[ApplicationCode]:
    """Store the default catalog, skipping codes that already exist."""
    existing = {c.code for c in await repository.list_application_codes()}
    added = []
    for code in default_application_codes():
        if code.code in existing:
            continue
        await repository.save_application_code(code)
        added.append(code)
    return added


class ApplicationCodeRegistry:
    """Read-only lookup over stored application codes."""

    def __init__(self, repository: WorkflowRepository) -> None:
        self._repository = repository

    async def list(self) -> List[ApplicationCode]:
        return await self._repository.list_application_codes()

    async def get(self, code_id: str) -> ApplicationCode:
        code = await self._repository.get_application_code(code_id)
        if code is None:
            raise ApplicationCodeNotFound(code_id)
        return code

    async def by_code(self, value: str) -> ApplicationCode:
        """Find a code by its short code or any known alias."""
        wanted = normalize_form_code(value) or value.upper().strip()
        for code in await self._repository.list_application_codes():
            if code.code == wanted:
                return code
        raise ApplicationCodeNotFound(value)
