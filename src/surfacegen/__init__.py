"""Generation orchestration engine for logo-on-advertising-surface mockups."""
