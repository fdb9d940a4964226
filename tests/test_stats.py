from features.stats import population_variance, round_half_up, trimmed_mean, trimmed_slice


def test_round_half_up_rounds_ties_upward():
    assert round_half_up(74.5) == 75
    assert round_half_up(70.5) == 71
    assert round_half_up(74.49) == 74
    assert round_half_up(60000 / 805) == 75


def test_population_variance_uses_ddof_zero():
    assert population_variance([64, 76]) == 36.0
    assert population_variance([70, 70, 70]) == 0.0


def test_population_variance_sentinel_for_short_windows():
    assert population_variance([72]) == 999.0
    assert population_variance([]) == 999.0


def test_trimmed_slice_drops_expected_counts():
    values = list(range(15, 0, -1))
    kept = trimmed_slice(values, 0.2)
    # floor(15*0.2)=3 from the bottom, 15-ceil(15*0.8)=3 from the top
    assert kept == list(range(4, 13))


def test_trimmed_mean_of_scenario_history():
    history = [70, 71, 69, 95, 70, 72, 68, 71, 70, 69]
    assert trimmed_slice(history) == [69, 70, 70, 70, 71, 71]
    assert trimmed_mean(history) == 70


def test_trimmed_mean_empty():
    assert trimmed_mean([]) is None
