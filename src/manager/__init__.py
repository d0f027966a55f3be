"""HTTP API for starting, inspecting and aborting translation jobs."""
