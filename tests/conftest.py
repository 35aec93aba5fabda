"""
Pytest configuration and fixtures for placement compiler tests.

This module provides shared fixtures for:
- A small cluster (tasks placed on nodes) as an IRContext
- Compiler and solver driver instances with test settings
- Reproducible random instances for property tests
"""
import random

import pytest

from dcm.config import TestingConfig
from dcm.models import (
    IRContext,
    IRTable,
    foreign_key_column,
    integer_column,
    string_column,
)
from dcm.services import ModelCompiler, SolverDriver


TASK_CONTROLLABLE = 'controllable__node'


def build_cluster(demands, capacities, apps=None, zones=None, preferred=None, current=None,
                  mems=None, mem_capacities=None):
    """
    Build an IRContext with ``nodes`` (targets) and ``tasks`` (placed rows).

    nodes: id, cpu_capacity, mem_capacity, zone
                                         ids are 1..len(capacities)
    tasks: id, cpu, mem, app, preferred_node, controllable__node
                                         ids are 1..len(demands)

    Memory demands and capacities are zero unless given.
    """
    nodes = IRTable('nodes', [
        integer_column('nodes', 'id'),
        integer_column('nodes', 'cpu_capacity'),
        integer_column('nodes', 'mem_capacity'),
        string_column('nodes', 'zone'),
    ], primary_key=['id'])
    tasks = IRTable('tasks', [
        integer_column('tasks', 'id'),
        integer_column('tasks', 'cpu'),
        integer_column('tasks', 'mem'),
        string_column('tasks', 'app'),
        integer_column('tasks', 'preferred_node'),
        foreign_key_column('tasks', TASK_CONTROLLABLE, 'nodes', 'id'),
    ], primary_key=['id'])

    zones = zones or ['zone-a'] * len(capacities)
    mem_capacities = mem_capacities or [0] * len(capacities)
    node_rows = [(i + 1, cap, mem_capacities[i], zones[i]) for i, cap in enumerate(capacities)]

    apps = apps or [f'app-{i}' for i in range(len(demands))]
    preferred = preferred or [None] * len(demands)
    current = current or [None] * len(demands)
    mems = mems or [0] * len(demands)
    task_rows = [(i + 1, cpu, mems[i], apps[i], preferred[i], current[i])
                 for i, cpu in enumerate(demands)]

    context = IRContext()
    context.add_table(nodes, node_rows)
    context.add_table(tasks, task_rows)
    return context, tasks, nodes


def random_instance(rng, max_rows=4, max_targets=3, max_demand=4, max_capacity=6):
    """Random small cluster: (demands, capacities)"""
    num_rows = rng.randint(1, max_rows)
    num_targets = rng.randint(1, max_targets)
    demands = [rng.randint(0, max_demand) for _ in range(num_rows)]
    capacities = [rng.randint(0, max_capacity) for _ in range(num_targets)]
    return demands, capacities


def random_two_resource_instance(rng, max_rows=4, max_targets=3, max_demand=4, max_capacity=6):
    """Random small cluster with cpu and memory: build_cluster keyword arguments"""
    demands, capacities = random_instance(rng, max_rows, max_targets, max_demand, max_capacity)
    return {
        'demands': demands,
        'capacities': capacities,
        'mems': [rng.randint(0, max_demand) for _ in demands],
        'mem_capacities': [rng.randint(0, max_capacity) for _ in capacities],
    }


@pytest.fixture
def make_cluster():
    """Factory fixture: make_cluster(demands, capacities, ...) -> (context, tasks, nodes)"""
    return build_cluster


@pytest.fixture
def rng():
    """Seeded random generator so property tests are reproducible."""
    return random.Random(20240517)


@pytest.fixture
def instances(rng):
    """Twenty seeded random (demands, capacities) pairs."""
    return [random_instance(rng) for _ in range(20)]


@pytest.fixture
def two_resource_instances(rng):
    """Twenty seeded random clusters with cpu and memory demands."""
    return [random_two_resource_instance(rng) for _ in range(20)]


@pytest.fixture
def compiler():
    """Compiler with test settings (auto encoding, symmetry breaking on)."""
    return ModelCompiler.from_config(TestingConfig)


@pytest.fixture
def driver():
    """Single-worker solver driver for reproducible search."""
    return SolverDriver.from_config(TestingConfig)
