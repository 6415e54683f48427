"""
graph/ -- GraphQL surface (strawberry).

  context.py     -- per-request context carrying services and the response sink
  extensions.py  -- post-execution auth cookie fallback
  types.py       -- GraphQL object and input types
  schema.py      -- Query, Mutation and the executable schema
"""
