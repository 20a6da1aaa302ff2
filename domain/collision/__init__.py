"""Collision Bounded Context.

Responsible for turning ray-cast distances into verdicts:
- Value Objects: CollisionThresholds, CollisionVerdict, CollisionResult
- Services: classify, build_result
"""
