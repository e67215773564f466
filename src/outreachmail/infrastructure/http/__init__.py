"""HTTP ingress routers."""
