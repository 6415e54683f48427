"""
auth/ -- Accounts, credentials, session tokens and OAuth federation.

  models.py   -- domain dataclasses
  tokens.py   -- bcrypt hashing, JWT issue/verify, auth cookie writers
  store.py    -- UserStore (users + sessions tables)
  oauth.py    -- Google/GitHub authorization-code client and join-or-create
  service.py  -- AuthService (signup, login, logout, me)
"""
