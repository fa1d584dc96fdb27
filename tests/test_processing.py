import os
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor
from types import SimpleNamespace

import numpy as np
import pandas as pd
import pytest
from shapely.geometry import box

import mappings
import processing
from boundary_map import BoundaryMap
from conftest import SYDNEY


class ExplodingMap(BoundaryMap):
    """Raises on one latitude, behaves normally otherwise."""

    def __init__(self, *args, explode_at=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.explode_at = explode_at

    def lookup(self, lat, lon):
        if lat == self.explode_at:
            raise RuntimeError("corrupt polygon")
        return super().lookup(lat, lon)


class ExitingMap(BoundaryMap):
    """Kills its worker process on one latitude."""

    def __init__(self, *args, exit_at=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.exit_at = exit_at

    def lookup(self, lat, lon):
        if lat == self.exit_at:
            os._exit(1)
        return super().lookup(lat, lon)


class SecondChunkFailsExecutor(ThreadPoolExecutor):
    """Thread pool whose second submitted task dies before running."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.submitted = 0

    def submit(self, fn, *args, **kwargs):
        self.submitted += 1
        if self.submitted == 2:
            def fail(*_args, **_kwargs):
                raise OSError("worker process died")
            return super().submit(fail, *args, **kwargs)
        return super().submit(fn, *args, **kwargs)


def _grid(n):
    """n points spread over the Australia box of the country_map fixture."""
    return pd.DataFrame({
        'latitude': np.linspace(-40.0, -12.0, n),
        'longitude': np.linspace(115.0, 152.0, n),
    })


# --- Low-resolution lookup ---

def test_low_resolution_annotates_every_row(observations, country_map, state_map):
    results_df, elapsed = processing.lookup_low_resolution(observations, [country_map, state_map])

    assert len(results_df) == len(observations)
    assert list(results_df.index) == list(observations.index)
    assert list(results_df.columns) == ['country', 'state', 'status', 'error']
    assert elapsed >= 0

    assert results_df.loc[0, 'country'] == 'Australia'
    assert results_df.loc[0, 'state'] == 'New South Wales'
    assert results_df.loc[1, 'state'] == 'Victoria'
    assert results_df.loc[2, 'country'] == 'New Zealand'
    assert results_df.loc[2, 'state'] == 'not found'
    assert results_df.loc[2, 'status'] == mappings.STATUS_OK


def test_low_resolution_miss_is_not_found_not_error(observations, country_map):
    results_df, _ = processing.lookup_low_resolution(observations, [country_map])

    north_pole = results_df.loc[4]
    assert north_pole['country'] == 'not found'
    assert north_pole['status'] == mappings.STATUS_LOOKUP_MISS
    assert pd.isna(north_pole['error'])


def test_invalid_coordinates_are_flagged_and_skipped(country_map):
    points = pd.DataFrame({'latitude': [SYDNEY[0], 200.0, np.nan], 'longitude': [SYDNEY[1], 0.0, 10.0]})

    results_df, _ = processing.lookup_low_resolution(points, [country_map])

    assert len(results_df) == 3
    assert results_df.loc[0, 'country'] == 'Australia'
    assert results_df.loc[1, 'status'] == mappings.STATUS_INVALID_COORDINATE
    assert pd.isna(results_df.loc[1, 'country'])
    assert 'out of range' in results_df.loc[1, 'error']
    assert results_df.loc[2, 'status'] == mappings.STATUS_INVALID_COORDINATE


def test_non_default_index_is_preserved(observations, country_map):
    points = observations.set_index(pd.Index([10, 30, 20, 50, 40]))

    results_df, _ = processing.lookup_low_resolution(points, [country_map])

    assert list(results_df.index) == [10, 30, 20, 50, 40]
    assert results_df.loc[10, 'country'] == 'Australia'


# --- Custom (parallel) lookup ---

def test_custom_lookup_uses_none_for_misses(observations, country_map, state_map, lga_map):
    results_df, _ = processing.lookup_custom_boundaries(observations, [country_map, state_map, lga_map], num_workers=1)

    assert list(results_df.columns) == ['country', 'state', 'lga', 'status', 'error']
    assert results_df.loc[0, 'lga'] == 'Sydney'
    assert results_df.loc[3, 'country'] == 'Australia'
    assert pd.isna(results_df.loc[3, 'lga'])
    assert results_df.loc[4, 'status'] == mappings.STATUS_LOOKUP_MISS


def test_output_order_is_the_same_for_any_pool_size(country_map, state_map, lga_map):
    points = _grid(25)
    maps = [country_map, state_map, lga_map]

    serial_df, _ = processing.lookup_custom_boundaries(points, maps, num_workers=1)
    parallel_df, _ = processing.lookup_custom_boundaries(points, maps, num_workers=3, executor_cls=ProcessPoolExecutor)

    assert len(parallel_df) == len(points)
    pd.testing.assert_frame_equal(serial_df, parallel_df)


def test_repeated_runs_are_identical(country_map, state_map):
    points = _grid(12)
    maps = [country_map, state_map]

    first, _ = processing.lookup_custom_boundaries(points, maps, num_workers=2, executor_cls=ThreadPoolExecutor)
    second, _ = processing.lookup_custom_boundaries(points, maps, num_workers=2, executor_cls=ThreadPoolExecutor)

    pd.testing.assert_frame_equal(first, second)


@pytest.mark.parametrize("executor_cls", [ThreadPoolExecutor, ProcessPoolExecutor])
def test_failing_row_does_not_take_down_the_pool(country_map, executor_cls):
    points = _grid(10)
    bad_lat = points.loc[4, 'latitude']  # row 5
    exploding = ExplodingMap('state', ['Everywhere'], [box(113.0, -44.0, 154.0, -10.0)], explode_at=bad_lat)

    results_df, _ = processing.lookup_custom_boundaries(
        points, [country_map, exploding], num_workers=3, executor_cls=executor_cls
    )

    assert len(results_df) == 10
    assert results_df.loc[4, 'status'] == mappings.STATUS_WORKER_FAILURE
    assert 'RuntimeError' in results_df.loc[4, 'error']
    assert pd.isna(results_df.loc[4, 'country'])

    others = results_df.drop(index=4)
    assert (others['status'] == mappings.STATUS_OK).all()
    assert (others['country'] == 'Australia').all()
    assert (others['state'] == 'Everywhere').all()


def test_failed_chunk_only_flags_its_own_rows(country_map):
    points = _grid(10)

    results_df, _ = processing.lookup_custom_boundaries(
        points, [country_map], num_workers=3, executor_cls=SecondChunkFailsExecutor
    )

    # 10 rows over 3 workers: chunks 0-3, 4-6, 7-9
    failed = results_df.index[results_df['status'] == mappings.STATUS_WORKER_FAILURE].tolist()
    assert failed == [4, 5, 6]
    assert (results_df.loc[[0, 1, 2, 3, 7, 8, 9], 'country'] == 'Australia').all()
    assert 'OSError' in results_df.loc[5, 'error']


def test_dead_worker_process_only_flags_the_row_that_killed_it(country_map):
    points = _grid(30)
    exiting = ExitingMap('state', ['Everywhere'], [box(113.0, -44.0, 154.0, -10.0)], exit_at=points.loc[4, 'latitude'])

    results_df, _ = processing.lookup_custom_boundaries(
        points, [country_map, exiting], num_workers=3, executor_cls=ProcessPoolExecutor
    )

    assert len(results_df) == 30
    failed = results_df.index[results_df['status'] == mappings.STATUS_WORKER_FAILURE].tolist()
    assert failed == [4]
    assert 'Broken' in results_df.loc[4, 'error']

    others = results_df.drop(index=4)
    assert (others['status'] == mappings.STATUS_OK).all()
    assert (others['country'] == 'Australia').all()
    assert (others['state'] == 'Everywhere').all()


def test_more_workers_than_rows(country_map):
    points = _grid(2)

    results_df, _ = processing.lookup_custom_boundaries(points, [country_map], num_workers=4, executor_cls=ThreadPoolExecutor)

    assert list(results_df['country']) == ['Australia', 'Australia']


def test_empty_batch(country_map):
    points = pd.DataFrame({'latitude': [], 'longitude': []})

    results_df, _ = processing.lookup_custom_boundaries(points, [country_map], num_workers=3)

    assert results_df.empty
    assert list(results_df.columns) == ['country', 'status', 'error']


@pytest.mark.parametrize("lookup", [
    processing.lookup_low_resolution,
    lambda points, maps: processing.lookup_custom_boundaries(points, maps, num_workers=1),
])
def test_elapsed_includes_row_preparation(monkeypatch, observations, country_map, lookup):
    clock = {'now': 100.0}
    monkeypatch.setattr(processing, 'time', SimpleNamespace(perf_counter=lambda: clock['now']))
    points_to_rows = processing._points_to_rows

    def slow_points_to_rows(points_df):
        clock['now'] += 5.0
        return points_to_rows(points_df)

    monkeypatch.setattr(processing, '_points_to_rows', slow_points_to_rows)

    _, elapsed = lookup(observations, [country_map])

    assert elapsed == 5.0


def test_pool_size_must_be_positive(observations, country_map):
    with pytest.raises(ValueError):
        processing.lookup_custom_boundaries(observations, [country_map], num_workers=0)


def test_default_num_workers_keeps_a_core_free(monkeypatch):
    monkeypatch.setattr(processing.os, 'cpu_count', lambda: 8)
    assert processing.default_num_workers() == 7

    monkeypatch.setattr(processing.os, 'cpu_count', lambda: 1)
    assert processing.default_num_workers() == 1

    monkeypatch.setattr(processing.os, 'cpu_count', lambda: None)
    assert processing.default_num_workers() == 1


# --- Summaries ---

def test_summarize_statuses_lists_every_status(observations, country_map):
    results_df, _ = processing.lookup_low_resolution(observations, [country_map])

    counts = processing.summarize_statuses(results_df)

    assert list(counts.index) == mappings.STATUSES
    assert counts[mappings.STATUS_OK] == 4
    assert counts[mappings.STATUS_LOOKUP_MISS] == 1
    assert counts[mappings.STATUS_WORKER_FAILURE] == 0
