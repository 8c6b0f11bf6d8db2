import datetime as dt
from decimal import Decimal

from fixtures import FakeMarketData

from ledgerbook.ledger.domain import HistoricalFxRate
from ledgerbook.ledger.fx import (
    FxSeries,
    HistoricalFxResolver,
    MemoryFxCache,
    fx_pair_symbol,
)

D = dt.date


def _usd_closes():
    return [
        (D(2024, 1, 2), Decimal("1.3300")),
        (D(2024, 1, 3), Decimal("1.3400")),
        (D(2024, 1, 5), Decimal("1.3600")),
        (D(2024, 1, 8), Decimal("1.3500")),
    ]


def test_fx_pair_symbol():
    assert fx_pair_symbol("usd", "SGD") == "USDSGD=X"


def test_series_nearest_date_ties_go_earlier():
    series = FxSeries(_usd_closes())
    assert series.nearest(D(2024, 1, 3)) == Decimal("1.3400")
    # Jan 4 sits between Jan 3 and Jan 5
    assert series.nearest(D(2024, 1, 4)) == Decimal("1.3400")
    # Jan 7 is closer to Jan 8
    assert series.nearest(D(2024, 1, 7)) == Decimal("1.3500")
    assert series.nearest(D(2023, 12, 1)) == Decimal("1.3300")
    assert series.nearest(D(2024, 2, 1)) == Decimal("1.3500")
    assert FxSeries([]).nearest(D(2024, 1, 1)) is None


def test_series_discards_non_positive_closes():
    series = FxSeries([(D(2024, 1, 2), Decimal("0")), (D(2024, 1, 9), Decimal("1.2"))])
    assert len(series) == 1
    assert series.nearest(D(2024, 1, 2)) == Decimal("1.2")


def test_resolve_groups_by_currency_and_pads_window():
    md = FakeMarketData({"USDSGD=X": _usd_closes()})
    resolver = HistoricalFxResolver(md, MemoryFxCache(), base_currency="SGD")

    result = resolver.resolve(
        [
            ("USD", D(2024, 1, 3)),
            ("USD", D(2024, 1, 6)),
            ("USD", D(2024, 1, 3)),
            ("SGD", D(2024, 1, 3)),
        ]
    )
    assert result == {
        ("USD", D(2024, 1, 3)): Decimal("1.3400"),
        ("USD", D(2024, 1, 6)): Decimal("1.3600"),
        ("SGD", D(2024, 1, 3)): Decimal("1"),
    }
    assert md.calls == [("USDSGD=X", D(2023, 12, 29), D(2024, 1, 11))]


def test_resolve_warm_cache_skips_provider():
    md = FakeMarketData({"USDSGD=X": _usd_closes()})
    cache = MemoryFxCache()
    resolver = HistoricalFxResolver(md, cache, base_currency="SGD")

    cold = resolver.resolve([("USD", D(2024, 1, 2))])
    assert len(md.calls) == 1
    assert len(cache) == 1

    warm = resolver.resolve([("USD", D(2024, 1, 2))])
    assert warm == cold
    assert len(md.calls) == 1


def test_resolve_failed_currency_is_omitted():
    md = FakeMarketData(
        {"USDSGD=X": _usd_closes()},
        failing={"HKDSGD=X"},
    )
    cache = MemoryFxCache()
    resolver = HistoricalFxResolver(md, cache, base_currency="SGD", max_workers=2)

    result = resolver.resolve(
        [("USD", D(2024, 1, 2)), ("HKD", D(2024, 1, 2)), ("EUR", D(2024, 1, 2))]
    )
    assert result == {("USD", D(2024, 1, 2)): Decimal("1.3300")}
    assert sorted(c[0] for c in md.calls) == ["EURSGD=X", "HKDSGD=X", "USDSGD=X"]
    assert cache.lookup_cached_fx_rate("HKD", D(2024, 1, 2), "SGD") is None


def test_seed_only_fills_missing_pairs():
    cache = MemoryFxCache()
    cache.cache_fx_rate(HistoricalFxRate(D(2024, 1, 2), "USD", "SGD", Decimal("1.33")))
    resolver = HistoricalFxResolver(FakeMarketData(), cache, base_currency="SGD")

    written = resolver.seed(
        [
            HistoricalFxRate(D(2024, 1, 2), "USD", "SGD", Decimal("1.40")),
            HistoricalFxRate(D(2024, 1, 3), "USD", "SGD", Decimal("1.34")),
            HistoricalFxRate(D(2024, 1, 3), "USD", "EUR", Decimal("0.91")),
        ]
    )
    assert written == 1
    assert cache.lookup_cached_fx_rate("USD", D(2024, 1, 2), "SGD") == Decimal("1.33")
    assert resolver.resolve([("USD", D(2024, 1, 3))]) == {
        ("USD", D(2024, 1, 3)): Decimal("1.34")
    }
