"""Translation engine wrapper and language heuristics."""
