"""
Application layer: checklist execution, inventory, matrix building, orchestration.
"""
