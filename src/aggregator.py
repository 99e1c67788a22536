"""
WindowAggregator: the per-pixel moving-window scan.

For every processable pixel the window around it is scanned once. Patch
areas and perimeters, class totals and value statistics are accumulated
and turned into metric values by a ``MetricFinalizer`` directly after the
scan.

Two engines share these semantics:

    numba   Compiled row kernel (``kernels.scan_rows``), rows distributed
            over threads with ``numba.prange``. Default.
    python  Pure-Python scan over ``WindowAccumulators``, rows split into
            blocks for a thread pool. Slow, kept as the readable reference.

Inputs are shared read-only; every row is written by exactly one worker.
"""

import math
import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, NamedTuple, Optional

import numba
import numpy as np
from tqdm import tqdm

from .accumulators import WindowAccumulators
from .kernel import KernelGeometry
from .kernels import scan_rows
from .metrics import Metric, MetricFinalizer


ENGINES = ("numba", "python")


class LayerContext(NamedTuple):
    """
    Read-only inputs of one feature layer.

    Rasters are held as nested lists, which is considerably faster than
    numpy scalar indexing inside the pure-Python pixel loop.
    """
    values: List[list]
    usable: List[List[bool]]
    active: List[List[bool]]
    labels: List[List[int]]
    nodata: Optional[float]
    n_labels: int
    height: int
    width: int

    @classmethod
    def from_arrays(
        cls,
        values: np.ndarray,
        usable: np.ndarray,
        active: np.ndarray,
        labels: np.ndarray,
        n_labels: int,
        nodata: Optional[float] = None
    ) -> "LayerContext":
        height, width = values.shape
        return cls(
            values=values.tolist(),
            usable=np.asarray(usable, dtype=bool).tolist(),
            active=np.asarray(active, dtype=bool).tolist(),
            labels=np.asarray(labels).tolist(),
            nodata=nodata,
            n_labels=int(n_labels),
            height=height,
            width=width,
        )


class WindowAggregator:
    """
    Moving-window scan over a tile.

    Attributes:
        kernel (KernelGeometry): Window offsets and normalization constants.
        finalizer (MetricFinalizer): Turns accumulators into metric values.
        all_pixels (bool): If True, inactive cells are scanned and included too.
        n_workers (int): Number of worker threads.
        block_rows (int): Rows per work item (per thread for the numba engine).
        engine (str): 'numba' or 'python'.
        verbose (bool): Show a progress bar.
    """

    def __init__(
        self,
        kernel: KernelGeometry,
        finalizer: MetricFinalizer,
        all_pixels: bool = False,
        n_workers: Optional[int] = None,
        block_rows: int = 8,
        engine: str = "numba",
        verbose: bool = True
    ):
        if engine not in ENGINES:
            raise ValueError(f"Unknown engine '{engine}'. Use one of: {', '.join(ENGINES)}")

        self.kernel = kernel
        self.finalizer = finalizer
        self.all_pixels = all_pixels
        self.n_workers = n_workers or os.cpu_count() or 1
        self.block_rows = max(int(block_rows), 1)
        self.engine = engine
        self.verbose = verbose

        # (ii, jj, down, up, right, left)
        self._plan = [
            (ii, jj) + sides for (ii, jj), sides in zip(kernel.offsets, kernel.inner_sides)
        ]

        # Same plan as arrays, for the compiled kernel
        self._offsets = np.array(kernel.offsets, dtype=np.int64).reshape(-1, 2)
        self._sides = np.array(kernel.inner_sides, dtype=np.bool_).reshape(-1, 4)
        members = list(Metric)
        self._metric_ids = np.array([members.index(m) for m in finalizer.order], dtype=np.int64)

    # =========================================================================
    # SINGLE PIXEL
    # =========================================================================

    def scan_pixel(self, acc: WindowAccumulators, ctx: LayerContext, i: int, j: int) -> None:
        """
        Accumulate the window centered on (i, j).

        The accumulators are cleared first, so ``acc`` can be reused from the
        previous pixel without a full reset.

        Args:
            acc: Worker-private accumulators sized for ``ctx.n_labels``.
            ctx: Layer inputs.
            i: Row of the center pixel.
            j: Column of the center pixel.
        """
        acc.clear()

        values, usable, active, labels = ctx.values, ctx.usable, ctx.active, ctx.labels
        height, width, nodata = ctx.height, ctx.width, ctx.nodata
        all_pixels = self.all_pixels
        stats = acc.stats
        patch_cells = acc.patch_cells
        patch_edges = acc.patch_edges
        exists = acc.exists

        for ii, jj, down, up, right, left in self._plan:
            ni = i + ii
            nj = j + jj

            # outside of tile
            if ni < 0 or nj < 0 or ni >= height or nj >= width:
                continue

            # masked or invalid
            if not usable[ni][nj]:
                continue

            is_active = active[ni][nj]
            if not is_active and not all_pixels:
                continue

            value = values[ni][nj]

            # nodata and NaN samples stay out of the value statistics
            if value == value and value != nodata:
                stats.push(value)
                if acc.max_value is None or value > acc.max_value:
                    acc.max_value = value

                # ln is undefined for values <= 0
                if value > 0:
                    acc.log_sum += math.log(value)
                    acc.log_count += 1

            ccl = labels[ni][nj]
            if ccl > 0 and not exists[ccl]:
                acc.touch(ccl)

            if not acc.touched:
                continue

            if ccl > 0:
                patch_cells[ccl] += 1

            if is_active:
                acc.class_cells += 1

            # transitions between this cell and its neighbors inside the window
            n_edges = 0
            if down and ni + 1 < height and active[ni + 1][nj] != is_active:
                n_edges += 1
            if up and ni - 1 >= 0 and active[ni - 1][nj] != is_active:
                n_edges += 1
            if right and nj + 1 < width and active[ni][nj + 1] != is_active:
                n_edges += 1
            if left and nj - 1 >= 0 and active[ni][nj - 1] != is_active:
                n_edges += 1

            if n_edges:
                if ccl > 0:
                    patch_edges[ccl] += n_edges
                acc.edge_count += n_edges

    # =========================================================================
    # ROW BLOCKS
    # =========================================================================

    def _accumulators(self, local: threading.local, n_labels: int) -> WindowAccumulators:
        acc = getattr(local, 'acc', None)
        if acc is None:
            acc = local.acc = WindowAccumulators(n_labels)
        return acc

    def process_rows(
        self,
        acc: WindowAccumulators,
        ctx: LayerContext,
        outputs: Dict[Metric, np.ndarray],
        row_start: int,
        row_stop: int
    ) -> int:
        """
        Scan and finalize every processable pixel in ``[row_start, row_stop)``.

        Returns:
            int: Number of pixels written.
        """
        written = 0
        finalize = self.finalizer.finalize

        for i in range(row_start, row_stop):
            usable_row = ctx.usable[i]
            active_row = ctx.active[i]
            label_row = ctx.labels[i]

            for j in range(ctx.width):
                if not usable_row[j]:
                    continue
                if not active_row[j] and not self.all_pixels:
                    continue

                self.scan_pixel(acc, ctx, i, j)

                for metric, value in finalize(acc, label_row[j]).items():
                    outputs[metric][i, j] = value
                written += 1

        return written

    def run(
        self,
        ctx: LayerContext,
        outputs: Dict[Metric, np.ndarray],
        desc: str = "Scanning windows"
    ) -> int:
        """
        Scan the whole tile in parallel.

        Args:
            ctx: Layer inputs.
            outputs: One 2-D int16 array per enabled metric, pre-filled with
                     nodata; written in place.
            desc: Progress bar label.

        Returns:
            int: Number of pixels written.

        Raises:
            MemoryError: If a worker cannot allocate its accumulators.
        """
        local = threading.local()
        blocks = [
            (start, min(start + self.block_rows, ctx.height))
            for start in range(0, ctx.height, self.block_rows)
        ]

        def work(start: int, stop: int) -> int:
            acc = self._accumulators(local, ctx.n_labels)
            return self.process_rows(acc, ctx, outputs, start, stop)

        written = 0
        with ThreadPoolExecutor(max_workers=self.n_workers, thread_name_prefix='lsm') as executor:
            futures = [executor.submit(work, start, stop) for start, stop in blocks]

            for future in tqdm(as_completed(futures), total=len(futures), desc=desc,
                               unit="block", disable=not self.verbose, leave=False):
                written += future.result()

        return written

    # =========================================================================
    # COMPILED ENGINE
    # =========================================================================

    def _run_compiled(
        self,
        values: np.ndarray,
        usable: np.ndarray,
        active: np.ndarray,
        labels: np.ndarray,
        n_labels: int,
        nodata: Optional[float],
        outputs: Dict[Metric, np.ndarray],
        desc: str
    ) -> int:
        height, width = values.shape
        out = np.full((len(self.finalizer.order), height, width), self.finalizer.nodata, dtype=np.int16)

        usable = np.ascontiguousarray(usable, dtype=np.bool_)
        active = np.ascontiguousarray(active, dtype=np.bool_)
        labels = np.ascontiguousarray(labels, dtype=np.int32)
        values = np.ascontiguousarray(values)

        n_threads = min(self.n_workers, numba.config.NUMBA_NUM_THREADS)
        numba.set_num_threads(n_threads)

        # one kernel call per chunk of rows, for progress reporting
        chunk = self.block_rows * n_threads
        starts = range(0, height, chunk)

        written = 0
        for start in tqdm(starts, desc=desc, unit="chunk", disable=not self.verbose, leave=False):
            stop = min(start + chunk, height)
            rows = scan_rows(
                values, usable, active, labels, int(n_labels),
                float(nodata) if nodata is not None else 0.0, nodata is not None,
                self._offsets, self._sides, self.kernel.window_size, self.all_pixels,
                self._metric_ids, self.finalizer.nodata, out, start, stop
            )
            written += int(rows.sum())

        for index, metric in enumerate(self.finalizer.order):
            outputs[metric][...] = out[index]
        return written

    # =========================================================================
    # LAYER SCAN
    # =========================================================================

    def scan(
        self,
        values: np.ndarray,
        usable: np.ndarray,
        active: np.ndarray,
        labels: np.ndarray,
        n_labels: int,
        nodata: Optional[float],
        outputs: Dict[Metric, np.ndarray],
        desc: str = "Scanning windows"
    ) -> int:
        """
        Scan one feature layer with the configured engine.

        Args:
            values: Feature values.
            usable: Processable cells (see ``valid_cells``).
            active: Active cells.
            labels: Patch labels, 0 = background.
            n_labels: Number of patch labels.
            nodata: Input nodata value of the layer (None if it has none).
            outputs: One 2-D int16 array per enabled metric, pre-filled with
                     nodata; written in place.
            desc: Progress bar label.

        Returns:
            int: Number of pixels written.

        Raises:
            MemoryError: If the scratch or output buffers cannot be allocated.
        """
        if self.engine == "numba":
            return self._run_compiled(values, usable, active, labels, n_labels, nodata, outputs, desc)

        ctx = LayerContext.from_arrays(values, usable, active, labels, n_labels, nodata)
        return self.run(ctx, outputs, desc=desc)
