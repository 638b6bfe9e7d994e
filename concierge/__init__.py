"""AI guest-reply orchestration for vacation-rental messaging."""
