import os

# Keep developer credentials and cluster settings out of the unit tests
for _name in ("KUBECONFIG", "HELM_KUBECONTEXT", "HELM_NAMESPACE"):
    os.environ.pop(_name, None)
