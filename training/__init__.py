"""
training/ -- Coding-question catalogue backing the training UI.

  models.py  -- Question dataclass
  store.py   -- filtered, paginated listing over the questions table
"""
