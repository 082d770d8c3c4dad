"""Generation pipeline: client, retry policy, queue and batch scheduling."""
