"""Process management — agent processes and the registry that tracks them.

- AgentManager: spawn, stop, list, clean, attach to agent processes
- BatchSpawner: spawn N templated agents in one call
- RegistryStore: atomic, locked persistence of agents.json
- ProcessBackend: detached launch, liveness check and termination per platform
"""
