"""
Map shader units to their output files.
Usage: resolve(ShaderUnit.from_name('fill.fs.glsl'), TargetFormat.METAL_SOURCE, config)
  -> <target>/metal/fill.fs.glsl.metal
"""
import enum
import os
from collections import namedtuple

from shader_errors import ConfigurationError


class TargetFormat(enum.Enum):
    PROCESSED_GLSL = 'gl3'
    INTERMEDIATE_BINARY = 'spv'
    METAL_SOURCE = 'metal'


OutputTarget = namedtuple('OutputTarget', 'format path')

# (source suffix, root, subdir, output suffix, format); root is 'target' or 'build'
Rule = namedtuple('Rule', 'source_suffix root subdir output_suffix format')

RULES = [
    Rule('.fs.glsl', 'target', 'gl3', '.fs.glsl', TargetFormat.PROCESSED_GLSL),
    Rule('.fs.glsl', 'build', 'metal', '.fs.spv', TargetFormat.INTERMEDIATE_BINARY),
    Rule('.fs.glsl', 'target', 'metal', '.fs.glsl.metal', TargetFormat.METAL_SOURCE),
    Rule('.vs.glsl', 'target', 'gl3', '.vs.glsl', TargetFormat.PROCESSED_GLSL),
    Rule('.vs.glsl', 'build', 'metal', '.vs.spv', TargetFormat.INTERMEDIATE_BINARY),
    Rule('.vs.glsl', 'target', 'metal', '.vs.glsl.metal', TargetFormat.METAL_SOURCE),
]


def find_rule(name, fmt, rules=RULES):
    for rule in rules:
        if rule.format is fmt and name.endswith(rule.source_suffix) and len(name) > len(rule.source_suffix):
            return rule
    raise ConfigurationError('No %s rule for %s' % (fmt.name, name), name)


def resolve(unit, fmt, config, rules=RULES):
    """Return the OutputTarget for unit in the given format. No side effects."""
    rule = find_rule(unit.name, fmt, rules)
    root = config.target_root if rule.root == 'target' else config.build_root
    stem = unit.name[:-len(rule.source_suffix)]
    return OutputTarget(fmt, os.path.join(root, rule.subdir, stem + rule.output_suffix))


def resolve_all(unit, config):
    return {fmt: resolve(unit, fmt, config) for fmt in TargetFormat}
