# -----------------------------------------------------------------------------
# ENCLAVE DEPLOY
# -----------------------------------------------------------------------------
# Deploys container images as apps running inside trusted execution
# environments, registered on chain through an AppController contract.
#
#   domain/  Pydantic models and the error taxonomy
#   infra/   Docker engine, registry, status API and chain RPC wrappers
#   core/    Envelope, release, batch, delegation, gas, executor, watcher
# -----------------------------------------------------------------------------

__version__ = "0.1.0"
