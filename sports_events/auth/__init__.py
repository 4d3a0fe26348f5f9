from sports_events.auth.token_validator import AuthContext, CrossServiceTokenValidator

__all__ = ["AuthContext", "CrossServiceTokenValidator"]
