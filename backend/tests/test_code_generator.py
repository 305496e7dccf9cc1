import pytest
from werkzeug.exceptions import HTTPException
from milicard import get_db
from milicard.models.goods import Goods
from milicard.services import code_generator
from milicard.services.code_generator import (
    build_code, generate_code, generate_codes, validate_code_format, extract_type_from_code, PREFIXES, CHARSET,
)
from tests.test_utils_seed import make_goods


def test_build_code_shape_for_every_type():
    for code_type, prefix in PREFIXES.items():
        code = build_code(code_type)
        head, tail = code.split('-')
        assert head == prefix
        assert len(tail) == 11
        assert all(ch in CHARSET for ch in tail)
        assert 'I' not in tail and 'O' not in tail


def test_build_code_unknown_type():
    with pytest.raises(ValueError):
        build_code('INVOICE')


def test_validate_and_extract():
    code = build_code('PURCHASE_ORDER')
    assert code.startswith('PUSH-')
    assert validate_code_format(code)
    assert validate_code_format(code, 'PURCHASE_ORDER')
    assert not validate_code_format(code, 'POINT_ORDER')
    assert extract_type_from_code(code) == 'PURCHASE_ORDER'
    assert extract_type_from_code(build_code('WAREHOUSE_KEEPER')) == 'WAREHOUSE_KEEPER'
    assert not validate_code_format('PUSH-123')
    assert not validate_code_format('PUSH-0123456789I')  # I is outside the alphabet
    assert not validate_code_format('NOPE-0123456789A')
    assert extract_type_from_code('garbage') is None


def test_generate_code_retries_on_collision(app_context, monkeypatch):
    taken = make_goods(code='GOODS-AAAAAAAAAAA')
    candidates = iter(['GOODS-AAAAAAAAAAA', 'GOODS-BBBBBBBBBBB'])
    monkeypatch.setattr(code_generator, 'build_code', lambda code_type: next(candidates))
    code = generate_code(get_db(), 'GOODS', Goods)
    assert code == 'GOODS-BBBBBBBBBBB'
    assert taken.code != code


def test_generate_code_gives_up_after_max_attempts(app_context, monkeypatch):
    make_goods(code='GOODS-AAAAAAAAAAA')
    monkeypatch.setattr(code_generator, 'build_code', lambda code_type: 'GOODS-AAAAAAAAAAA')
    with pytest.raises(HTTPException) as exc:
        generate_code(get_db(), 'GOODS', Goods)
    assert exc.value.code == 500


def test_generate_codes_are_distinct(app_context):
    codes = generate_codes(get_db(), 'STOCK_OUT', Goods, 5)
    assert len(set(codes)) == 5
    assert all(c.startswith('SO-') for c in codes)
