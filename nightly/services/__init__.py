"""Pipeline stages of the nightly release.

Dependency order: clock and gate, registrar, platform build fan-out,
universal merge and channel publishers. ``orchestrator`` wires them into a
task graph.
"""
