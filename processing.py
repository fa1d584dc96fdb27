# processing.py
import os
import time
from concurrent.futures import BrokenExecutor, CancelledError, ProcessPoolExecutor
from functools import partial

import numpy as np
import pandas as pd

import config # Import config variables
import mappings
from data_loader import InvalidCoordinateError, validate_coordinate


def default_num_workers():
    """Available cores minus the ones reserved for the coordinating process."""
    return max(1, (os.cpu_count() or 1) - config.RESERVED_CORES)

def annotate_point(lat, lon, maps, missing_value=None):
    """
    Looks one point up in every boundary map.

    Args:
        lat, lon: WGS84 coordinate. Validated here.
        maps (list): BoundaryMap objects, looked up in list order.
        missing_value: Value stored for levels where no polygon matched.

    Returns:
        tuple: (annotation dict level -> name, status). The status is
               lookup_miss when no map matched at all.

    Raises:
        InvalidCoordinateError: If the coordinate is non-numeric or out of range.
    """
    lat, lon = validate_coordinate(lat, lon)
    annotation = {}
    found = False
    for boundary_map in maps:
        name = boundary_map.lookup(lat, lon)
        if name is None:
            annotation[boundary_map.level] = missing_value
        else:
            annotation[boundary_map.level] = name
            found = True
    status = mappings.STATUS_OK if found else mappings.STATUS_LOOKUP_MISS
    return annotation, status

def _failed_row(position, levels, status, error):
    return position, dict.fromkeys(levels), status, error

def _lookup_rows(rows, maps, missing_value=None):
    """
    Annotates a list of (position, lat, lon) rows. Runs inside pool workers.

    Any error is confined to its row: invalid coordinates are flagged
    invalid_coordinate, anything else worker_failure.
    """
    levels = [boundary_map.level for boundary_map in maps]
    results = []
    for position, lat, lon in rows:
        try:
            annotation, status = annotate_point(lat, lon, maps, missing_value)
            results.append((position, annotation, status, None))
        except InvalidCoordinateError as e:
            results.append(_failed_row(position, levels, mappings.STATUS_INVALID_COORDINATE, str(e)))
        except Exception as e:
            results.append(_failed_row(position, levels, mappings.STATUS_WORKER_FAILURE, f"{type(e).__name__}: {e}"))
    return results

def _assemble_results(index, levels, row_results):
    """Builds the output DataFrame from per-position results, in input order."""
    records = [None] * len(index)
    for position, annotation, status, error in row_results:
        record = {level: annotation.get(level) for level in levels}
        record['status'] = status
        record['error'] = error
        records[position] = record
    return pd.DataFrame(records, index=index, columns=levels + ['status', 'error'])

def _points_to_rows(points_df):
    return list(zip(range(len(points_df)), points_df['latitude'], points_df['longitude']))

def _retry_rows_one_by_one(rows, positions, worker, executor_cls, levels):
    """
    Re-runs rows left unfinished by a broken pool, one row per task in a
    single-worker pool. A row that breaks the pool again is flagged
    worker_failure and the rows after it get a fresh pool.
    """
    print(f"Retrying {len(positions)} rows one at a time...")
    row_results = []
    executor = None
    try:
        for i in positions:
            if executor is None:
                executor = executor_cls(max_workers=1)
            try:
                row_results.extend(executor.submit(worker, [rows[i]]).result())
            except (Exception, CancelledError) as e:
                print(f"Warning: Worker failed on row {i}: {type(e).__name__}: {e}")
                row_results.append(_failed_row(i, levels, mappings.STATUS_WORKER_FAILURE, f"{type(e).__name__}: {e}"))
                if isinstance(e, BrokenExecutor):
                    executor.shutdown(wait=False, cancel_futures=True)
                    executor = None
    finally:
        if executor is not None:
            executor.shutdown()
    return row_results

def lookup_low_resolution(points_df, maps, missing_value=config.NOT_FOUND):
    """
    Sequential lookup against the low-detail boundary maps.

    Args:
        points_df: DataFrame with 'latitude' and 'longitude' columns.
        maps (list): BoundaryMap objects in EPSG:4326 (one per level).
        missing_value: Marker for levels without a containing polygon.

    Returns:
        tuple: (results DataFrame indexed like points_df with one column per
               map level plus 'status' and 'error', elapsed seconds).
    """
    print(f"Looking up {len(points_df)} points in {len(maps)} low-resolution maps...")
    start = time.perf_counter()
    levels = [boundary_map.level for boundary_map in maps]
    row_results = _lookup_rows(_points_to_rows(points_df), maps, missing_value)
    results_df = _assemble_results(points_df.index, levels, row_results)
    elapsed = time.perf_counter() - start
    return results_df, elapsed

def lookup_custom_boundaries(points_df, maps, num_workers=None, executor_cls=ProcessPoolExecutor):
    """
    Parallel lookup against externally supplied boundary maps.

    Rows are split into contiguous chunks, one per worker. Each chunk is
    annotated in a pool that only lives for this call, and results are put
    back by original position, so output order never depends on which
    worker finishes first. Levels without a match are None.

    A chunk that a dying worker process leaves unfinished is not flagged
    wholesale: its rows are re-run one at a time in fresh single-worker
    pools, and only rows that break the pool again are worker_failure.

    Args:
        points_df: DataFrame with 'latitude' and 'longitude' columns.
        maps (list): BoundaryMap objects in lookup order (country, state, lga).
        num_workers (int): Pool size. Defaults to default_num_workers().
                           1 runs inline without a pool.
        executor_cls: concurrent.futures executor class used for the pool.

    Returns:
        tuple: (results DataFrame indexed like points_df, elapsed seconds).
    """
    if num_workers is None:
        num_workers = default_num_workers()
    if num_workers < 1:
        raise ValueError(f"num_workers must be at least 1, got {num_workers}")

    start = time.perf_counter()
    levels = [boundary_map.level for boundary_map in maps]
    rows = _points_to_rows(points_df)

    if num_workers == 1 or len(rows) <= 1:
        row_results = _lookup_rows(rows, maps)
    else:
        chunks = [chunk.tolist() for chunk in np.array_split(np.arange(len(rows)), num_workers) if len(chunk)]
        print(f"Looking up {len(rows)} points in {len(maps)} custom maps using {num_workers} workers...")
        worker = partial(_lookup_rows, maps=maps)
        row_results = []
        unfinished = []
        with executor_cls(max_workers=num_workers) as executor:
            futures = [executor.submit(worker, [rows[i] for i in chunk]) for chunk in chunks]
            for future, chunk in zip(futures, chunks):
                try:
                    row_results.extend(future.result())
                except (BrokenExecutor, CancelledError) as e:
                    # Retried below, one row per fresh pool
                    print(f"Warning: Pool broke before rows {chunk[0]}-{chunk[-1]} finished: {type(e).__name__}: {e}")
                    unfinished.extend(chunk)
                    executor.shutdown(wait=False, cancel_futures=True)
                except Exception as e:
                    print(f"Warning: Worker failed on rows {chunk[0]}-{chunk[-1]}: {type(e).__name__}: {e}")
                    row_results.extend(
                        _failed_row(i, levels, mappings.STATUS_WORKER_FAILURE, f"{type(e).__name__}: {e}")
                        for i in chunk
                    )
        if unfinished:
            row_results.extend(_retry_rows_one_by_one(rows, unfinished, worker, executor_cls, levels))

    results_df = _assemble_results(points_df.index, levels, row_results)
    elapsed = time.perf_counter() - start
    failures = (results_df['status'] == mappings.STATUS_WORKER_FAILURE).sum()
    if failures:
        print(f"Warning: {failures} rows failed inside workers.")
    return results_df, elapsed

def summarize_statuses(results_df):
    """Counts rows per status, in mappings.STATUSES order (zeros included)."""
    counts = results_df['status'].value_counts()
    return counts.reindex(mappings.STATUSES, fill_value=0).astype(int)
