from .conv import parse_date, parse_long_date, to_dec, to_dec_opt, to_dec_strict

__all__ = [
    "parse_date",
    "parse_long_date",
    "to_dec",
    "to_dec_opt",
    "to_dec_strict",
]
