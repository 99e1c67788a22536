"""
Compiled moving-window scan.

Numba versions of the window scan and of the metric finalization. Rows are
distributed over threads with ``numba.prange``; every row owns its scratch
arrays, so no state is shared between threads. The arithmetic mirrors
``WindowAggregator.scan_pixel`` and ``MetricFinalizer`` step by step, which
keeps both engines' outputs identical.

Metrics are addressed by their index in ``Metric`` (product order):
    0 MPA, 1 UCI, 2 FDI, 3 EDD, 4 NBR, 5 EMS, 6 AVG, 7 STD, 8 GEO, 9 MAX
"""

import math

import numba
import numpy as np


FIXED_POINT_SCALE = 10000.0
INT16_MIN = -32768
INT16_MAX = 32767


@numba.njit(cache=True)
def _store(value, scale, nodata):
    """Truncate, saturate and keep the result off the nodata sentinel."""
    scaled = value * scale
    if scaled >= INT16_MAX:
        encoded = INT16_MAX
    elif scaled <= INT16_MIN:
        encoded = INT16_MIN
    else:
        encoded = int(scaled)

    if encoded == nodata:
        if encoded < 0:
            encoded += 1
        else:
            encoded -= 1
    return encoded


@numba.njit(parallel=True, cache=True)
def scan_rows(values, usable, active, labels, n_labels, nodata, has_nodata,
              offsets, sides, window_size, all_pixels, metric_ids, out_nodata,
              out, row_start, row_stop):
    """
    Scan and finalize every processable pixel of rows [row_start, row_stop).

    Args:
        values: 2-D feature values.
        usable: 2-D bool, processable cells.
        active: 2-D bool, active cells.
        labels: 2-D patch labels (0 = background).
        n_labels: Number of patch labels K.
        nodata: Input nodata value (ignored unless ``has_nodata``).
        has_nodata: Whether the layer has an input nodata value.
        offsets: (N, 2) int64 window offsets in scan order.
        sides: (N, 4) bool edge gates (down, up, right, left).
        window_size: Number of cells in the window shape.
        all_pixels: Also scan inactive cells.
        metric_ids: Enabled metric indexes, in product order.
        out_nodata: Output nodata sentinel.
        out: (n_metrics, height, width) int16 output, written in place.

    Returns:
        np.ndarray: Pixels written per row.
    """
    height, width = values.shape
    n_offsets = offsets.shape[0]
    n_metrics = metric_ids.shape[0]
    n_rows = row_stop - row_start
    written = np.zeros(n_rows, dtype=np.int64)

    for r in numba.prange(n_rows):
        i = row_start + r

        # row-private scratch, reset lazily between pixels
        patch_cells = np.zeros(n_labels + 1, dtype=np.int64)
        patch_edges = np.zeros(n_labels + 1, dtype=np.int64)
        exists = np.zeros(n_labels + 1, dtype=np.bool_)
        touched = np.zeros(n_offsets, dtype=np.int64)
        n_touched = 0

        for j in range(width):
            if not usable[i, j]:
                continue
            if not active[i, j] and not all_pixels:
                continue

            for t in range(n_touched):
                label = touched[t]
                patch_cells[label] = 0
                patch_edges[label] = 0
                exists[label] = False
            n_touched = 0

            class_cells = 0
            edge_count = 0
            count = 0
            mean = 0.0
            m2 = 0.0
            has_max = False
            max_value = 0.0
            log_sum = 0.0
            log_count = 0

            for k in range(n_offsets):
                ni = i + offsets[k, 0]
                nj = j + offsets[k, 1]

                if ni < 0 or nj < 0 or ni >= height or nj >= width:
                    continue
                if not usable[ni, nj]:
                    continue

                is_active = active[ni, nj]
                if not is_active and not all_pixels:
                    continue

                value = float(values[ni, nj])
                if value == value and not (has_nodata and value == nodata):
                    count += 1
                    if count == 1:
                        mean = value
                    else:
                        old_mean = mean
                        mean = old_mean + (value - old_mean) / count
                        m2 += (value - old_mean) * (value - mean)

                    if not has_max or value > max_value:
                        max_value = value
                        has_max = True

                    if value > 0:
                        log_sum += math.log(value)
                        log_count += 1

                ccl = labels[ni, nj]
                if ccl > 0 and not exists[ccl]:
                    touched[n_touched] = ccl
                    n_touched += 1
                    exists[ccl] = True

                if n_touched == 0:
                    continue

                if ccl > 0:
                    patch_cells[ccl] += 1
                if is_active:
                    class_cells += 1

                n_edges = 0
                if sides[k, 0] and ni + 1 < height and active[ni + 1, nj] != is_active:
                    n_edges += 1
                if sides[k, 1] and ni - 1 >= 0 and active[ni - 1, nj] != is_active:
                    n_edges += 1
                if sides[k, 2] and nj + 1 < width and active[ni, nj + 1] != is_active:
                    n_edges += 1
                if sides[k, 3] and nj - 1 >= 0 and active[ni, nj - 1] != is_active:
                    n_edges += 1

                if n_edges > 0:
                    if ccl > 0:
                        patch_edges[ccl] += n_edges
                    edge_count += n_edges

            for m in range(n_metrics):
                metric = metric_ids[m]

                if metric == 0:
                    mpa = 0.0
                    if class_cells > 0:
                        sum_area = 0.0
                        sum_share = 0.0
                        for t in range(n_touched):
                            cells = patch_cells[touched[t]]
                            share = cells / class_cells
                            sum_area += share * cells
                            sum_share += share
                        if sum_share > 0:
                            mpa = sum_area / sum_share / window_size
                    result = _store(mpa, FIXED_POINT_SCALE, out_nodata)
                elif metric == 1:
                    result = _store(float(labels[i, j]), 1.0, out_nodata)
                elif metric == 2:
                    sum_fd = 0.0
                    sum_weight = 0.0
                    for t in range(n_touched):
                        unit_area = patch_cells[touched[t]]
                        unit_perim = patch_edges[touched[t]]
                        if unit_area == 1 or unit_perim <= 0:
                            continue
                        weight = unit_area / window_size
                        sum_fd += weight * 2.0 * math.log(0.25 * unit_perim) / math.log(unit_area)
                        sum_weight += weight
                    fdi = sum_fd / sum_weight if sum_weight > 0 else 0.0
                    result = _store(fdi, FIXED_POINT_SCALE, out_nodata)
                elif metric == 3:
                    result = _store(edge_count / window_size, FIXED_POINT_SCALE, out_nodata)
                elif metric == 4:
                    result = _store(float(n_touched), 1.0, out_nodata)
                elif metric == 5:
                    class_area = class_cells / window_size
                    result = _store(class_area * class_area, FIXED_POINT_SCALE, out_nodata)
                elif metric == 6:
                    result = _store(mean, 1.0, out_nodata) if count > 0 else out_nodata
                elif metric == 7:
                    std = math.sqrt(m2 / (count - 1)) if count >= 2 else 0.0
                    result = _store(std, 1.0, out_nodata)
                elif metric == 8:
                    if log_count == 0:
                        result = out_nodata
                    else:
                        result = _store(math.exp(log_sum / log_count), 1.0, out_nodata)
                else:
                    result = _store(max_value, 1.0, out_nodata) if has_max else out_nodata

                out[m, i, j] = result

            written[r] += 1

    return written
