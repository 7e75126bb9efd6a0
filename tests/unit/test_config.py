"""Build configuration defaults and overrides."""

import logging

import pytest

from kdweave import (
    BuildEvent,
    TreeBuildConfig,
    build_distributed_kdtree,
    get_default_build_config,
    log_build_event,
    set_default_build_config,
)
from tests.unit.spmd_fixtures import random_dataset


@pytest.fixture(autouse=True)
def _reset_default_config():
    yield
    set_default_build_config(None)


def test_defaults():
    config = get_default_build_config()
    assert config.leaf_size == 45
    assert config.median_split_levels is None
    assert config.validate_world_size


def test_module_default_applies_to_builds():
    ids, points = random_dataset(40, 2)
    set_default_build_config(TreeBuildConfig(leaf_size=4))
    tree = build_distributed_kdtree(ids, points)
    assert tree.leaf_size == 4


def test_explicit_leaf_size_overrides_config():
    ids, points = random_dataset(40, 2)
    tree = build_distributed_kdtree(
        ids, points, config=TreeBuildConfig(leaf_size=4), leaf_size=50
    )
    assert tree.leaf_size == 50
    assert tree.num_nodes == 1


def test_median_split_levels_default_to_skeleton_depth():
    ids, points = random_dataset(40, 2)
    assert build_distributed_kdtree(ids, points).median_split_levels == 0
    tree = build_distributed_kdtree(
        ids, points, config=TreeBuildConfig(leaf_size=4, median_split_levels=5)
    )
    assert tree.median_split_levels == 5


def test_invalid_configs_are_rejected():
    with pytest.raises(ValueError):
        set_default_build_config(TreeBuildConfig(leaf_size=0))
    with pytest.raises(ValueError):
        set_default_build_config(TreeBuildConfig(median_split_levels=-1))
    assert get_default_build_config() == TreeBuildConfig()


def test_log_build_event_uses_given_logger(caplog):
    target = logging.getLogger("kdweave.test")
    event = BuildEvent(
        rank=2, world_size=4, phase="local tree built", num_points=10, num_nodes=3
    )
    with caplog.at_level(logging.INFO, logger="kdweave.test"):
        log_build_event(event, level=logging.INFO, logger=target)
    (record,) = caplog.records
    assert record.name == "kdweave.test"
    assert "local tree built (rank 2/4): points=10, nodes=3, offset=0" in record.getMessage()
