"""pluggy markers for flowlite hook specifications and implementations."""

import pluggy

HOOK_NAMESPACE = "flowlite"

hook_spec = pluggy.HookspecMarker(HOOK_NAMESPACE)
hook_impl = pluggy.HookimplMarker(HOOK_NAMESPACE)
