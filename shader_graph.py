"""
Build the dependency graph for a shader manifest.
Every output is a node listing the files it is made from; a node whose input
is another node's output runs after it (source -> .spv -> .metal).
Any include change invalidates every output, there is no per-shader include tracking.
"""
import os
from dataclasses import dataclass

from shader_errors import ConfigurationError
from shader_targets import TargetFormat, resolve_all

PROCESS = 'process'
COMPILE = 'compile'
TRANSLATE = 'translate'


@dataclass(frozen=True)
class BuildNode:
    output: str
    inputs: tuple
    kind: str
    unit: object
    format: TargetFormat

    @property
    def source(self):
        """The input handed to the tool; the rest are only checked for staleness."""
        return self.inputs[0]


def build_graph(manifest, config):
    """Return {output path: BuildNode} for every unit in the manifest."""
    includes = tuple(config.path(inc.name) for inc in manifest.includes)
    graph = {}
    for unit in manifest.units:
        source = config.path(unit.name)
        targets = resolve_all(unit, config)
        gl3 = targets[TargetFormat.PROCESSED_GLSL].path
        spv = targets[TargetFormat.INTERMEDIATE_BINARY].path
        metal = targets[TargetFormat.METAL_SOURCE].path
        for node in (
            BuildNode(gl3, (source,) + includes, PROCESS, unit, TargetFormat.PROCESSED_GLSL),
            BuildNode(spv, (source,) + includes, COMPILE, unit, TargetFormat.INTERMEDIATE_BINARY),
            BuildNode(metal, (spv,), TRANSLATE, unit, TargetFormat.METAL_SOURCE),
        ):
            if node.output in graph:
                raise ConfigurationError('Two rules produce %s' % node.output, node.output)
            graph[node.output] = node
    return graph


def dependencies(graph, node):
    """Inputs of node that are themselves built by the graph."""
    return [i for i in node.inputs if i in graph]


def dependants(graph):
    """Invert the graph: output -> list of outputs that consume it."""
    rev = {out: [] for out in graph}
    for out, node in graph.items():
        for dep in dependencies(graph, node):
            rev[dep].append(out)
    return rev


def topological_order(graph):
    """Return outputs in dependency order (dependency before dependant)."""
    order = []
    visited = set()
    active = set()

    def visit(n):
        if n in visited:
            return
        if n in active:
            raise ConfigurationError('Dependency cycle through %s' % n, n)
        active.add(n)
        for d in dependencies(graph, graph[n]):
            visit(d)
        active.discard(n)
        visited.add(n)
        order.append(n)

    for n in graph:
        visit(n)
    return order


def check_inputs(node, graph=None):
    """Raise ConfigurationError for a missing input that no node produces."""
    graph = graph or {}
    for path in node.inputs:
        if path not in graph and not os.path.exists(path):
            raise ConfigurationError('Missing input %s for %s' % (path, node.output), path)


def is_stale(node, graph=None):
    """make-style rule: rebuild if the output is missing or any input is newer.

    Inputs that another node produces may not exist yet; they count as newer.
    Any other missing input is a configuration error.
    """
    graph = graph or {}
    check_inputs(node, graph)
    newest = None
    for path in node.inputs:
        try:
            mtime = os.path.getmtime(path)
        except OSError:
            if path in graph:
                return True
            raise ConfigurationError('Missing input %s for %s' % (path, node.output), path)
        newest = mtime if newest is None else max(newest, mtime)
    try:
        out_mtime = os.path.getmtime(node.output)
    except OSError:
        return True
    return newest is not None and newest > out_mtime
