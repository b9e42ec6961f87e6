import pytest

from analysis.market_quality import assess_market_quality


def test_quality_score_counts_valid_pairs():
    snapshot = {
        'USDC/WETH': {'a': 0.00026, 'b': 0.00025},     # 4% spread, valid
        'WETH/DAI': {'a': 3900.0},                      # one venue, invalid
        'DAI/USDC': {'a': 1.0, 'b': 1.5},               # 50% spread, suspicious
        'LINK/USDC': {'a': 15.0, 'b': 15.1, 'c': -1},   # bad quote ignored, valid
    }
    quality = assess_market_quality(snapshot)

    assert quality.total_pairs == 4
    assert quality.valid_pairs == 2
    assert quality.invalid_pairs == 1
    assert len(quality.suspicious_pairs) == 1
    assert quality.suspicious_pairs[0].pair == 'DAI/USDC'
    assert quality.quality_score == pytest.approx(50.0)
    assert quality.max_spread_pct == pytest.approx(50.0)
    assert quality.average_spread_pct == pytest.approx((4.0 + 50.0 + (0.1 / 15 * 100)) / 3)


def test_empty_snapshot_scores_zero():
    quality = assess_market_quality({})

    assert quality.quality_score == 0.0
    assert quality.max_spread_pct == 0.0
    assert quality.to_dict()['total_pairs'] == 0


def test_non_mapping_venues_count_as_invalid():
    quality = assess_market_quality({'DAI/USDC': [1.0], 'USDC/WETH': {'a': 0.00026, 'b': 0.00025}})

    assert quality.total_pairs == 2
    assert quality.invalid_pairs == 1
    assert quality.quality_score == pytest.approx(50.0)
