"""Business code generation: ``PREFIX-`` + 11 characters from an unambiguous alphabet.

Codes are checked for uniqueness against the ``code`` column of the target model and
regenerated (up to ``MAX_ATTEMPTS`` times) on collision.
"""
from __future__ import annotations
import logging
import re
import secrets
from typing import List, Optional, Type

from flask import abort
from sqlalchemy import select

logger = logging.getLogger(__name__)

# no I / O to avoid confusion with 1 / 0
CHARSET = '0123456789ABCDEFGHJKLMNPQRSTUVWXYZ'
RANDOM_LENGTH = 11
MAX_ATTEMPTS = 10

PREFIXES = {
    'ANCHOR': 'ANCHOR',
    'WAREHOUSE_KEEPER': 'KEEPER',
    'LIVE_ROOM': 'LIVE',
    'WAREHOUSE': 'WAREHOUSE',
    'GOODS': 'GOODS',
    'CUSTOMER': 'CUSTOMER',
    'SUPPLIER': 'SUPPLIER',
    'BASE': 'BASE',
    'PURCHASE_ORDER': 'PUSH',
    'DISTRIBUTION_ORDER': 'DO',
    'TRANSFER_ORDER': 'TO',
    'ARRIVAL_ORDER': 'AO',
    'STOCK_OUT': 'SO',
    'POINT': 'POINT',
    'POINT_ORDER': 'PTO',
}

_TYPE_BY_PREFIX = {prefix: code_type for code_type, prefix in PREFIXES.items()}
_CODE_RE = re.compile(r'^([A-Z]+)-([%s]{%d})$' % (CHARSET, RANDOM_LENGTH))


def _random_part() -> str:
    return ''.join(secrets.choice(CHARSET) for _ in range(RANDOM_LENGTH))


def build_code(code_type: str) -> str:
    prefix = PREFIXES.get(code_type)
    if prefix is None:
        raise ValueError(f'unknown code type {code_type}')
    return f'{prefix}-{_random_part()}'


def _code_exists(session, model: Type, code: str) -> bool:
    return session.execute(select(model.id).where(model.code == code)).first() is not None


def generate_code(session, code_type: str, model: Type, reserved: Optional[set] = None) -> str:
    reserved = reserved or set()
    for attempt in range(1, MAX_ATTEMPTS + 1):
        code = build_code(code_type)
        if code not in reserved and not _code_exists(session, model, code):
            return code
        logger.warning('code collision for %s on attempt %d', code_type, attempt)
    logger.error('could not generate a unique %s code after %d attempts', code_type, MAX_ATTEMPTS)
    abort(500, description=f'Unable to generate unique {code_type} code')


def generate_codes(session, code_type: str, model: Type, count: int) -> List[str]:
    codes: List[str] = []
    for _ in range(count):
        codes.append(generate_code(session, code_type, model, reserved=set(codes)))
    return codes


def validate_code_format(code: str, code_type: Optional[str] = None) -> bool:
    match = _CODE_RE.match(code or '')
    if not match or match.group(1) not in _TYPE_BY_PREFIX:
        return False
    if code_type is not None:
        return match.group(1) == PREFIXES.get(code_type)
    return True


def extract_type_from_code(code: str) -> Optional[str]:
    match = _CODE_RE.match(code or '')
    if not match:
        return None
    return _TYPE_BY_PREFIX.get(match.group(1))
