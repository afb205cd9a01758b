# utils/constants.py

# --- Configuration Files ---
DEFAULT_CONFIG_PATH = "config/template.yaml"
DEFAULT_SCHEMA_PATH = "config/template-schema.json"
CONFIG_FILE_ENV = "CONFIG_FILE"
DEFAULT_EXPORT_PREFIX = "TEMPLATE_"

# Keys that must be present and non-empty in every template configuration
REQUIRED_KEYS = [
    "template.name",
    "template.version",
    "template.base_image",
    "k3s.version",
]

# --- Format Rules ---
TEMPLATE_VERSION_PATTERN = r"^\d+\.\d+\.\d+$"
K3S_VERSION_PATTERN = r"^v\d+\.\d+\.\d+\+k3s\d+$"
BASE_IMAGE_PATTERN = r"^alpine:\d+\.\d+$"
SUPPORTED_ARCHITECTURES = ["amd64", "arm64", "armv7"]

# --- Built-in Defaults (well-known keys) ---
CONFIG_DEFAULTS = {
    # Template
    "template.architecture": "amd64",
    "template.description": "Alpine Linux LXC template with pre-installed K3s",
    "template.author": "PVE LXC K3s Template Generator",

    # K3s
    "k3s.cluster_init": True,
    "k3s.install_options": [
        "--disable=traefik",
        "--disable=servicelb",
        "--write-kubeconfig-mode=644",
    ],
    "k3s.server_options": [],
    "k3s.agent_options": [],

    # System
    "system.timezone": "UTC",
    "system.locale": "en_US.UTF-8",
    "system.packages": ["curl", "wget", "ca-certificates", "openssl", "bash", "coreutils"],
    "system.remove_packages": ["apk-tools-doc", "man-pages", "docs"],
    "system.services.enable": ["k3s"],
    "system.services.disable": ["chronyd"],

    # Security
    "security.disable_root_login": True,
    "security.create_k3s_user": True,
    "security.k3s_user": "k3s",
    "security.k3s_uid": 1000,
    "security.k3s_gid": 1000,
    "security.firewall_rules": [
        {"port": "6443", "protocol": "tcp", "description": "K3s API Server"},
        {"port": "10250", "protocol": "tcp", "description": "Kubelet API"},
        {"port": "8472", "protocol": "udp", "description": "Flannel VXLAN"},
    ],
    "security.remove_packages": ["apk-tools", "alpine-keys"],

    # Network
    "network.interfaces": [],
    "network.dns_servers": ["8.8.8.8", "8.8.4.4"],
    "network.search_domains": [],

    # Storage
    "storage.volumes": [],
    "storage.mounts": [],
    "storage.cleanup_paths": ["/tmp/*", "/var/cache/apk/*", "/var/log/*"],

    # Build
    "build.cleanup_after_install": True,
    "build.optimize_size": True,
    "build.include_docs": False,
    "build.parallel_jobs": 2,
}

# --- Logging ---
LOG_LEVELS = ["DEBUG", "INFO", "WARN", "ERROR", "FATAL"]
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "structured"         # structured | simple
LOG_FORMATS = ["simple", "structured"]
DEFAULT_LOG_DIR = "logs"
DEFAULT_LOG_MAX_SIZE = 10 * 1024 * 1024   # 10MB
DEFAULT_LOG_MAX_FILES = 5
DEFAULT_CLEANUP_DAYS = 7
LOG_FILE_SUFFIX = ".log"

SIMPLE_LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
STRUCTURED_LOG_DATEFMT = "%Y-%m-%dT%H:%M:%SZ"

# Component names used by the CLI
CONFIG_COMPONENT = "config-loader"
VALIDATOR_COMPONENT = "config-validator"
LOGGING_COMPONENT = "logging"
LOG_MANAGER_COMPONENT = "log-manager"
