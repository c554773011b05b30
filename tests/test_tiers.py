import tiers


def test_tier_boundaries():
    assert tiers.compute_tier(0) == 1
    assert tiers.compute_tier(249) == 1
    assert tiers.compute_tier(250) == 2
    assert tiers.compute_tier(999) == 2
    assert tiers.compute_tier(1000) == 3
    assert tiers.compute_tier(2999) == 3
    assert tiers.compute_tier(3000) == 4
    assert tiers.compute_tier(30000) == 7
    assert tiers.compute_tier(10_000_000) == 7


def test_tier_is_monotonic_in_total():
    previous = tiers.compute_tier(0)
    for total in range(0, 32000, 50):
        tier = tiers.compute_tier(total)
        assert tier >= previous
        previous = tier


def test_tier_progress_mid_tier():
    progress = tiers.tier_progress(1500)
    assert progress["tier"] == 3
    assert progress["title"] == "The Beacon"
    assert progress["next_tier"] == 4
    assert progress["light_needed"] == 1500
    assert progress["progress_percent"] == 25


def test_tier_progress_at_max_tier():
    progress = tiers.tier_progress(45000)
    assert progress["tier"] == tiers.MAX_TIER
    assert progress["next_tier"] is None
    assert progress["light_needed"] == 0
    assert progress["progress_percent"] == 100
