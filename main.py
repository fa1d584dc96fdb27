# main.py
import os
import time

import pandas as pd

# Import from our modules
import config
import data_loader
import geocoding
import mappings
import processing


def run_comparison(observations, low_res_maps, custom_maps, geolocator=None,
                   remote_sample_size=config.REMOTE_SAMPLE_SIZE, num_workers=None, show_progress=True):
    """
    Runs the three reverse-geocoding methods on the same observations.

    A method whose maps are missing (None or empty) is skipped. The remote
    method only sees the first remote_sample_size rows (None sends all).

    Returns:
        dict: method key ('photon', 'low_res', 'custom') ->
              (results DataFrame, elapsed seconds).
    """
    results = {}

    remote_points = observations if remote_sample_size is None else observations.head(remote_sample_size)
    print(f"\n--- {mappings.METHOD_LABELS['photon']}: {len(remote_points)} rows ---")
    results['photon'] = geocoding.reverse_geocode_batch(
        remote_points, geolocator=geolocator, show_progress=show_progress
    )

    print(f"\n--- {mappings.METHOD_LABELS['low_res']}: {len(observations)} rows ---")
    if low_res_maps:
        results['low_res'] = processing.lookup_low_resolution(observations, low_res_maps)
    else:
        print("No low-resolution maps loaded, skipping.")

    print(f"\n--- {mappings.METHOD_LABELS['custom']}: {len(observations)} rows ---")
    if custom_maps:
        results['custom'] = processing.lookup_custom_boundaries(observations, custom_maps, num_workers=num_workers)
    else:
        print("No custom maps loaded, skipping.")

    return results

def build_timing_table(results):
    """Rows processed, elapsed seconds and throughput per method."""
    rows = []
    for method, (results_df, elapsed) in results.items():
        rows.append({
            'method': mappings.METHOD_LABELS.get(method, method),
            'rows': len(results_df),
            'seconds': round(elapsed, 3),
            'rows_per_second': round(len(results_df) / elapsed, 1) if elapsed > 0 else None,
        })
    return pd.DataFrame(rows, columns=['method', 'rows', 'seconds', 'rows_per_second'])

def build_status_table(results):
    """Row counts per status (columns) and method (index)."""
    table = pd.DataFrame(
        {mappings.METHOD_LABELS.get(method, method): processing.summarize_statuses(results_df)
         for method, (results_df, _) in results.items()}
    ).T
    return table.reindex(columns=mappings.STATUSES)

def build_comparison_table(observations, results, levels=('country', 'state'), n_rows=config.COMPARISON_ROWS):
    """
    Side-by-side place names from each method for the first n_rows observations.

    Columns are named '<method>_<level>'. Rows a method never saw (outside
    the remote sample) are NaN for that method.
    """
    base_cols = [col for col in ['latitude', 'longitude', 'acq_date'] if col in observations.columns]
    table = observations[base_cols].head(n_rows).copy()
    for method, (results_df, _) in results.items():
        for level in levels:
            if level in results_df.columns:
                table[f"{method}_{level}"] = results_df[level].reindex(table.index)
    return table

def write_results(observations, results, output_dir=config.OUTPUT_DIR, input_name=config.INPUT_FILENAME):
    """Writes one CSV per method: the observation columns plus its annotations."""
    os.makedirs(output_dir, exist_ok=True)
    paths = {}
    for method, (results_df, _) in results.items():
        output_df = pd.concat([observations.loc[results_df.index], results_df], axis=1)
        path = os.path.join(output_dir, f"{method}_{input_name}")
        output_df.to_csv(path, index=False, encoding='utf-8')
        paths[method] = path
        print(f"Results for {mappings.METHOD_LABELS.get(method, method)} saved to {path}")
    return paths

def _load_maps(loader, description):
    try:
        return loader()
    except FileNotFoundError as e:
        print(f"Error loading {description}: {e}")
        print("Please ensure the shapefiles are downloaded and paths in config.py are correct.")
    except ValueError as e:
        print(f"Error processing {description}: {e}")
    return []

def main():
    print("--- Starting Reverse Geocoding Comparison ---")
    start = time.perf_counter()

    # --- Load Observations ---
    try:
        observations = data_loader.load_observations()
    except FileNotFoundError as e:
        print(f"Error: {e}")
        return
    except ValueError as e:
        # Includes InvalidCoordinateError when ON_INVALID_COORDINATE is 'reject'
        print(f"Error reading input file '{config.INPUT_FILE}': {e}")
        return

    # --- Load Boundary Maps (Once, shared by every lookup) ---
    low_res_maps = _load_maps(data_loader.load_low_resolution_maps, "low-resolution maps")
    custom_maps = _load_maps(data_loader.load_custom_maps, "custom maps")

    # --- Run Methods ---
    results = run_comparison(observations, low_res_maps, custom_maps)

    # --- Report ---
    print("\n--- Timing ---")
    print(build_timing_table(results).to_string(index=False))
    print("\n--- Row Status ---")
    print(build_status_table(results).to_string())
    print("\n--- Side-by-side (first rows) ---")
    print(build_comparison_table(observations, results).to_string())

    write_results(observations, results)

    print(f"\n--- Comparison Complete ---")
    print(f"Total time taken: {time.perf_counter() - start:.2f} seconds")

# --- Crucial for Multiprocessing ---
if __name__ == "__main__":
    main()
