# Rewritten by rebuild.sh with `git rev-parse HEAD` before each install.
REVISION = "unknown"
