# geocoding.py
import time

import pandas as pd
from geopy.exc import (
    GeocoderRateLimited,
    GeocoderServiceError,
    GeocoderTimedOut,
    GeocoderUnavailable,
)
from geopy.geocoders import Photon
from tqdm import tqdm

import config # Import config variables
import mappings
from data_loader import InvalidCoordinateError, validate_coordinate

# Failures worth another attempt; any other GeocoderServiceError is final
RETRIABLE_ERRORS = (GeocoderTimedOut, GeocoderUnavailable, GeocoderRateLimited)


def build_geolocator(domain=None, user_agent=None, timeout=None, scheme=None):
    """Creates the geopy Photon client from config values."""
    return Photon(
        domain=domain or config.PHOTON_DOMAIN,
        user_agent=user_agent or config.PHOTON_USER_AGENT,
        timeout=timeout or config.PHOTON_TIMEOUT,
        scheme=scheme or config.PHOTON_SCHEME,
    )

def parse_photon_location(location):
    """
    Maps a Photon result to an annotation dict.

    Args:
        location: geopy Location whose .raw is a Photon GeoJSON feature, or
                  None when the service had no match.

    Returns:
        dict: level -> name for every level in mappings.PHOTON_LEVELS.
              Levels Photon doesn't report are None.
    """
    annotation = dict.fromkeys(mappings.PHOTON_LEVELS)
    if location is None:
        return annotation

    properties = (location.raw or {}).get('properties') or {}
    for level in mappings.PHOTON_LEVELS:
        for field in mappings.PHOTON_LEVEL_FIELDS[level]:
            value = properties.get(field)
            if value:
                annotation[level] = value
                break
    return annotation

def reverse_geocode_point(geolocator, lat, lon, max_retries=config.PHOTON_MAX_RETRIES, backoff=config.PHOTON_BACKOFF):
    """
    Reverse geocodes one coordinate, retrying transient failures.

    The wait before retry n (1-based) is backoff * 2**(n-1) seconds, or the
    service's Retry-After if that is longer.

    Returns:
        geopy Location or None if nothing was found.

    Raises:
        GeocoderServiceError: When retries are exhausted or the error is not
                              retriable.
    """
    attempt = 0
    while True:
        try:
            return geolocator.reverse((lat, lon), exactly_one=True)
        except RETRIABLE_ERRORS as e:
            if attempt >= max_retries:
                raise
            wait_time = backoff * (2 ** attempt)
            retry_after = getattr(e, 'retry_after', None)
            if retry_after:
                wait_time = max(wait_time, retry_after)
            attempt += 1
            print(f"Warning: {type(e).__name__} for ({lat}, {lon}): {e}. Retrying in {wait_time:.1f}s... (Attempt {attempt}/{max_retries})")
            if wait_time > 0:
                time.sleep(wait_time)

def reverse_geocode_batch(
    points_df,
    geolocator=None,
    max_retries=config.PHOTON_MAX_RETRIES,
    backoff=config.PHOTON_BACKOFF,
    min_delay=config.PHOTON_MIN_DELAY,
    batch_timeout=config.PHOTON_BATCH_TIMEOUT,
    show_progress=True,
):
    """
    Reverse geocodes every row with the hosted service, one request per row.

    A failing row never stops the batch: it is flagged and the loop moves on.
    Once batch_timeout seconds have passed, the remaining rows are flagged as
    remote_service_failure without being sent.

    Args:
        points_df: DataFrame with 'latitude' and 'longitude' columns.
        geolocator: Object with a geopy-style reverse(); defaults to
                    build_geolocator().
        max_retries (int): Retries per row for transient errors.
        backoff (float): First retry wait in seconds.
        min_delay (float): Pause between consecutive requests.
        batch_timeout (float): Time budget for the batch, None for no limit.
        show_progress (bool): Show a tqdm progress bar.

    Returns:
        tuple: (results DataFrame indexed like points_df with one column per
               Photon level plus 'status' and 'error', elapsed seconds).
    """
    if geolocator is None:
        geolocator = build_geolocator()

    levels = mappings.PHOTON_LEVELS
    records = []
    requests_sent = 0
    timed_out = False
    start = time.perf_counter()

    coords = zip(points_df['latitude'], points_df['longitude'])
    for lat, lon in tqdm(coords, total=len(points_df), desc="Photon reverse geocoding", disable=not show_progress):
        record = dict.fromkeys(levels)

        if not timed_out and batch_timeout is not None and time.perf_counter() - start >= batch_timeout:
            timed_out = True
            print(f"Warning: Batch timeout of {batch_timeout}s reached, remaining rows are not sent.")
        if timed_out:
            record.update(status=mappings.STATUS_REMOTE_SERVICE_FAILURE, error="batch timeout exceeded")
            records.append(record)
            continue

        try:
            lat, lon = validate_coordinate(lat, lon)
        except InvalidCoordinateError as e:
            record.update(status=mappings.STATUS_INVALID_COORDINATE, error=str(e))
            records.append(record)
            continue

        if requests_sent and min_delay:
            time.sleep(min_delay)
        requests_sent += 1

        try:
            location = reverse_geocode_point(geolocator, lat, lon, max_retries=max_retries, backoff=backoff)
            annotation = parse_photon_location(location)
        except GeocoderServiceError as e:
            print(f"Error: Reverse geocoding failed for ({lat}, {lon}): {type(e).__name__}: {e}")
            record.update(status=mappings.STATUS_REMOTE_SERVICE_FAILURE, error=f"{type(e).__name__}: {e}")
            records.append(record)
            continue
        except Exception as e:
            # Malformed response, e.g. a feature without geometry
            print(f"Error: Unexpected response for ({lat}, {lon}): {type(e).__name__}: {e}")
            record.update(status=mappings.STATUS_REMOTE_SERVICE_FAILURE, error=f"{type(e).__name__}: {e}")
            records.append(record)
            continue

        record.update(annotation)
        found = any(record[level] is not None for level in levels)
        record['status'] = mappings.STATUS_OK if found else mappings.STATUS_LOOKUP_MISS
        record['error'] = None
        records.append(record)

    results_df = pd.DataFrame(records, index=points_df.index, columns=levels + ['status', 'error'])
    elapsed = time.perf_counter() - start
    return results_df, elapsed
