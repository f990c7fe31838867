"""One-shot sync entry point (`handler.run_once` / `handler.lambda_handler`)."""
