from __future__ import annotations

import numpy as np
import pytest

from sediment_core import SOLID, SOLUTE, DepthGrid, StateVariable, TimeSchedule


def test_depth_grid_has_one_ghost_node_on_each_side():
    grid = DepthGrid.build(0.01, 0.4)
    assert grid.ndepths == 43
    assert np.isnan(grid.depths[0]) and np.isnan(grid.depths[-1])
    assert grid.interior[0] == 0.0
    assert grid.interior[-1] == pytest.approx(0.4)
    assert np.allclose(np.diff(grid.interior), 0.01)
    assert grid.z_res2 == pytest.approx(1e-4)


@pytest.mark.parametrize("z_res, z_max", [(0.0, 0.4), (-0.01, 0.4), (0.01, 0.0)])
def test_depth_grid_rejects_non_positive_sizes(z_res, z_max):
    with pytest.raises(ValueError):
        DepthGrid.build(z_res, z_max)


def test_schedule_forces_final_step_into_savepoints():
    sched = TimeSchedule.build(9.0, 1.0, 4)
    assert sched.n_steps == 10
    assert sched.savepoints == [1, 5, 9, 10]
    assert sched.n_savepoints == 4


def test_schedule_stride_landing_on_final_step():
    sched = TimeSchedule.build(8.0, 1.0, 4)
    assert sched.n_steps == 9
    assert sched.savepoints == [1, 5, 9]


def test_schedule_tolerates_inexact_stop_time():
    sched = TimeSchedule.build(0.3, 0.1, 1)
    assert sched.n_steps == 4
    assert sched.savepoints == [1, 2, 3, 4]


def test_schedule_every_step_saved_once():
    sched = TimeSchedule.build(5.0, 1.0, 1)
    assert sched.savepoints == list(range(1, 7))
    assert len(set(sched.savepoints)) == len(sched.savepoints)


@pytest.mark.parametrize("interval, save_every", [(0.0, 1), (-1.0, 1), (1.0, 0)])
def test_schedule_rejects_bad_arguments(interval, save_every):
    with pytest.raises(ValueError):
        TimeSchedule.build(10.0, interval, save_every)


def test_state_variable_from_scalar():
    var = StateVariable.create("dO2", SOLUTE, 0.2, 0.25, np.ones(7), ndepths=7, n_savepoints=3)
    assert np.isnan(var.previous[0]) and np.isnan(var.previous[-1])
    assert np.all(var.previous[1:-1] == 0.2)
    assert var.current is not var.previous
    assert var.save.shape == (5, 4)
    assert np.all(var.save[:, 0] == 0.2)
    assert np.all(np.isnan(var.save[:, 1:]))


def test_state_variable_from_profile():
    start = np.linspace(0.0, 4.0, 5)
    var = StateVariable.create("psoc", SOLID, start, 1.0, np.zeros(7), ndepths=7, n_savepoints=1)
    assert np.array_equal(var.previous[1:-1], start)
    assert np.array_equal(var.save[:, 0], start)


def test_state_variable_rejects_wrong_profile_length():
    with pytest.raises(ValueError):
        StateVariable.create("psoc", SOLID, [1.0, 2.0], 1.0, np.zeros(7), ndepths=7, n_savepoints=1)


def test_swap_copies_interior_and_keeps_ghosts():
    var = StateVariable.create("dO2", SOLUTE, 1.0, 1.0, np.ones(5), ndepths=5, n_savepoints=1)
    var.previous[0] = 7.0
    var.current[1:-1] = [2.0, 3.0, 4.0]
    var.swap()
    assert list(var.previous[1:-1]) == [2.0, 3.0, 4.0]
    assert var.previous[0] == 7.0
    var.snapshot(1)
    assert list(var.save[:, 1]) == [2.0, 3.0, 4.0]


@pytest.mark.parametrize("z_res, z_max, n_interior", [(0.06, 0.1, 2), (0.03, 0.1, 4), (0.1, 0.1, 2)])
def test_depth_grid_never_extends_past_column(z_res, z_max, n_interior):
    grid = DepthGrid.build(z_res, z_max)
    assert grid.interior.size == n_interior
    assert grid.interior[-1] <= z_max + 1e-12
