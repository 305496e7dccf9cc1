from milicard.utils.quantities import total_pieces, split_pieces, box_priced_amount, pack_priced_amount, default_pack_price


def test_total_pieces():
    # 1 box = 10 packs, 1 pack = 12 pieces
    assert total_pieces(2, 3, 5, 10, 12) == 2 * 120 + 3 * 12 + 5
    assert total_pieces(0, 0, 0, 10, 12) == 0


def test_split_pieces_largest_unit_first():
    assert split_pieces(281, 10, 12) == (2, 3, 5)
    assert split_pieces(11, 10, 12) == (0, 0, 11)
    assert split_pieces(-281, 10, 12) == (-2, -3, -5)


def test_box_priced_amount_rounds_half_up():
    # box 1000 cents, 3 packs per box -> pack 333.33.., piece (per 2) 166.66..
    assert box_priced_amount(1, 0, 0, 1000, 3, 2) == 1000
    assert box_priced_amount(0, 1, 0, 1000, 3, 2) == 333
    assert box_priced_amount(0, 0, 1, 1000, 3, 2) == 167
    assert box_priced_amount(0, 1, 1, 1000, 4, 2) == 375


def test_pack_priced_amount():
    assert pack_priced_amount(2, 3, 150, 10) == (2 * 10 + 3) * 150


def test_default_pack_price():
    assert default_pack_price(20000, 10) == 2000
    assert default_pack_price(1000, 3) == 333
    assert default_pack_price(500, 3) == 167
