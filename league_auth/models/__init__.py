from league_auth.models import auth, identity  # noqa: F401  (register tables on Base.metadata)
