"""Orchestration layer – decisions, dispatch, debate scheduling and the engine facade.

Nothing is re-exported here; import from the submodules
(``orchestration.engine``, ``orchestration.registry``, …).
"""
