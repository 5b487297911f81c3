import random

from supportchat.utils.business_number import SecureNumberPad, format_business_number, normalize_digits


def test_normalize_digits():
    assert normalize_digits("123-45 67890") == "1234567890"
    assert normalize_digits(None) == ""


def test_format_partial_and_full():
    assert format_business_number("12") == "12"
    assert format_business_number("1234") == "123-4"
    assert format_business_number("123456") == "123-45-6"
    assert format_business_number("123456789012") == "123-45-67890"


def test_pad_layout_is_a_permutation():
    pad = SecureNumberPad(random.Random(7))
    assert sorted(pad.layout) == list(range(10))


def test_pad_press_key_uses_layout():
    pad = SecureNumberPad(random.Random(1))
    digit = pad.layout[3]
    assert pad.press_key(3)
    assert pad.digits == str(digit)
    assert pad.press_key(10) is False


def test_pad_confirms_only_ten_digits():
    pad = SecureNumberPad(random.Random(3))
    for d in [1, 2, 3, 4, 5, 6, 7, 8, 9]:
        pad.press_digit(d)
    assert pad.confirm() is None
    pad.press_digit(0)
    assert pad.press_digit(5) is False
    assert pad.complete
    assert pad.display == "123-45-67890"
    assert pad.confirm() == "1234567890"

    pad.backspace()
    assert pad.confirm() is None


def test_reopen_clears_digits():
    pad = SecureNumberPad(random.Random(5))
    pad.press_digit(4)
    pad.open()
    assert pad.digits == ""
