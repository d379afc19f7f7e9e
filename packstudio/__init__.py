"""
Pack Studio Core

This package implements the core of an interactive story pack editor:
the authoring graph, its legality rules, the compiler and decompiler
between the authoring graph and the portable archive format, and the
playback state machine used for in-editor simulation.

LAYER STRUCTURE:
================

1. CONTRACTS (contracts/)
   - Responsibility: Shared immutable types, error codes, archive records
   - MUST NOT: Depend on any other layer

2. ASSET STORE (storage/)
   - Responsibility: Content-addressable binary assets (images, audio)
   - Outputs: Deduplicated asset files keyed by content hash
   - MUST NOT: Know about graphs or archives

3. GRAPH MODEL (graph/)
   - Responsibility: Nodes, derived ports, links, legality, validation
   - Outputs: PackGraph, ValidationReport
   - MUST NOT: Perform I/O

4. LAYOUT ASSIST (layout/)
   - Responsibility: Deterministic rank-based positions for imported graphs
   - MUST NOT: Mutate anything but node positions

5. ARCHIVE (archive/)
   - Responsibility: Compile graphs to archives, decompile archives to graphs
   - Outputs: CompiledPack, archive bytes, PackGraph
   - MUST NOT: Transmit archives anywhere

6. PLAYBACK (playback/)
   - Responsibility: Stage-by-stage traversal of a live graph
   - Outputs: PlaybackStep results, never exceptions

7. OBSERVABILITY (observability/)
   - Responsibility: Audit logs, metrics, lineage of synthetic records
   - MUST NOT: Modify system behavior

8. ENGINE + API (engine.py, api/)
   - Responsibility: Orchestrate the layers, expose them over HTTP
   - MUST NOT: Hold graph state between requests

CONSTRAINTS ENFORCED:
=====================
- Bipartite links: content-side ports only ever link to branch-side ports
- Fan-out bound: an outbound port carries at most one link
- Single entry: at most one entry node per pack
- Deterministic: compiling an unchanged graph is byte-for-byte reproducible
- Atomic: a failed compile or decompile produces nothing
"""

__version__ = "0.1.0"
