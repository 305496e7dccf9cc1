"""Central enum-like definitions to avoid typos in permission/service strings.
Extend cautiously; never rename codes silently; create new ones and deprecate old via migration if needed.
"""
from __future__ import annotations
from typing import List, Dict

SERVICES = [
    'BASE', 'GOODS', 'LOC', 'STAFF', 'SUP', 'PO', 'ARR', 'INV', 'SO',
    'POINT', 'PTO', 'VISIT', 'SALES', 'FX', 'SET', 'I18N', 'RPT', 'ADMIN',
]

SERVICE_ACTIONS = {
    'BASE': ['READ', 'MANAGE'],
    'GOODS': ['READ', 'MANAGE'],
    'LOC': ['READ', 'MANAGE'],
    'STAFF': ['READ', 'MANAGE'],
    'SUP': ['READ', 'MANAGE'],
    'PO': ['READ', 'CREATE', 'UPDATE', 'DELETE', 'CLOSE', 'PAY'],
    'ARR': ['READ', 'CREATE', 'DELETE'],
    'INV': ['READ', 'TRANSFER'],
    'SO': ['READ', 'CREATE', 'UPDATE', 'DELETE'],
    'POINT': ['READ', 'MANAGE'],
    'PTO': ['READ', 'CREATE', 'UPDATE', 'DELETE', 'CONFIRM', 'SHIP', 'DELIVER', 'COMPLETE', 'CANCEL', 'PAY'],
    'VISIT': ['READ', 'CREATE', 'DELETE'],
    'SALES': ['READ', 'CREATE', 'UPDATE', 'APPROVE', 'FULFILL', 'COMPLETE', 'CANCEL', 'PAY'],
    'FX': ['READ', 'MANAGE'],
    'SET': ['READ', 'MANAGE'],
    'I18N': ['MANAGE'],
    'RPT': ['READ'],
    'ADMIN': ['USER.MANAGE', 'ROLE.MANAGE', 'GROUP.MANAGE', 'SETTINGS.MANAGE', 'DATA_PERM.MANAGE']
}


def build_all_permission_codes() -> List[str]:
    codes: List[str] = []
    for svc, actions in SERVICE_ACTIONS.items():
        for act in actions:
            codes.append(f"{svc}.{act}")
    return codes

ALL_PERMISSION_CODES = build_all_permission_codes()

# role name -> level; lower is more privileged (data permission rules skip level <= AUTHZ_ADMIN_LEVEL)
ROLE_LEVELS: Dict[str, int] = {
    'Owner': 0,
    'BaseManager': 1,
    'Finance': 2,
    'WarehouseKeeper': 3,
    'Anchor': 4,
    'Dealer': 5,
    'PointOwner': 6,
}

ROLE_PRESETS: Dict[str, List[str]] = {
    # BaseManager: full operational authority inside the bases of its groups (excluding ADMIN)
    'BaseManager': [
        'BASE.READ', 'GOODS.READ', 'GOODS.MANAGE',
        'LOC.READ', 'LOC.MANAGE', 'STAFF.READ', 'STAFF.MANAGE', 'SUP.READ', 'SUP.MANAGE',
        'PO.READ', 'PO.CREATE', 'PO.UPDATE', 'PO.DELETE', 'PO.CLOSE',
        'ARR.READ', 'ARR.CREATE', 'ARR.DELETE',
        'INV.READ', 'INV.TRANSFER', 'SO.READ', 'SO.CREATE', 'SO.UPDATE', 'SO.DELETE',
        'POINT.READ', 'POINT.MANAGE',
        'PTO.READ', 'PTO.CREATE', 'PTO.UPDATE', 'PTO.DELETE', 'PTO.CONFIRM', 'PTO.SHIP',
        'PTO.DELIVER', 'PTO.COMPLETE', 'PTO.CANCEL',
        'VISIT.READ', 'VISIT.CREATE', 'VISIT.DELETE',
        'SALES.READ', 'SALES.CREATE', 'SALES.UPDATE', 'SALES.APPROVE', 'SALES.FULFILL',
        'SALES.COMPLETE', 'SALES.CANCEL',
        'FX.READ', 'SET.READ', 'RPT.READ',
    ],
    'Finance': ['BASE.READ', 'PO.READ', 'PO.PAY', 'PTO.READ', 'PTO.PAY', 'SALES.READ', 'SALES.PAY', 'FX.READ', 'FX.MANAGE', 'RPT.READ'],
    'WarehouseKeeper': ['BASE.READ', 'GOODS.READ', 'LOC.READ', 'PO.READ', 'ARR.READ', 'ARR.CREATE', 'INV.READ', 'INV.TRANSFER', 'SO.READ', 'SO.CREATE', 'SO.UPDATE', 'PTO.READ', 'PTO.SHIP'],
    'Anchor': ['BASE.READ', 'GOODS.READ', 'INV.READ', 'LOC.READ'],
    'Dealer': ['POINT.READ', 'PTO.READ', 'PTO.CREATE', 'VISIT.READ', 'VISIT.CREATE'],
    'PointOwner': ['POINT.READ', 'PTO.READ', 'PTO.CREATE', 'PTO.UPDATE'],
    'Owner': ['*']
}
