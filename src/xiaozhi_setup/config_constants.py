#!/usr/bin/env python3
"""
Default locations and names for the XiaoZhi server deployment.

This is the single source of truth for paths, image names and service
endpoints. Other modules import from here instead of hardcoding strings.

Layout under BASE_DIR:
- data/.config.yaml            = server override config (manager-api secret)
- models/SenseVoiceSmall/model.pt = ASR model weights
"""

# ============================================================================
# Host layout
# ============================================================================

DEFAULT_BASE_DIR = '/main/xiaozhi-server'
DATA_SUBDIR = 'data'
MODEL_SUBDIR = 'models/SenseVoiceSmall'
MODEL_FILENAME = 'model.pt'
CONFIG_FILENAME = '.config.yaml'

MODEL_URL = 'https://modelscope.cn/models/iic/SenseVoiceSmall/resolve/master/model.pt'

# ============================================================================
# Image build
# ============================================================================

DEFAULT_IMAGE_NAME = 'xiaozhi-esp32-server:server-base'
DEFAULT_DOCKERFILE = './Dockerfile-server-base.jetson'
DEFAULT_BUILDER_NAME = 'jetsonbuilder'
DEFAULT_PLATFORM = 'linux/arm64'
DEFAULT_PIP_TRUSTED_HOST = 'mirrors.aliyun.com'

# Relative to the directory the tool is started from
DEFAULT_COMPOSE_RELPATH = 'main/xiaozhi-server/docker-compose_arm.yml'

# ============================================================================
# Running stack
# ============================================================================

SERVER_CONTAINER = 'xiaozhi-esp32-server'
MANAGER_API_KEY = 'manager-api'
MANAGER_API_URL = 'http://xiaozhi-esp32-server-web:8002/xiaozhi'

ADMIN_PANEL_PORT = 8002
WEBSOCKET_PORT = 8000
WEBSOCKET_PATH = '/xiaozhi/v1/'

# ============================================================================
# Jetson iptables/raw workaround
# ============================================================================

# Kernels without CONFIG_IP_NF_RAW make dockerd fail with
# "Unable to enable DIRECT ACCESS FILTERING ... table `raw` ... does not exist".
DOCKER_OVERRIDE_DIR = '/etc/systemd/system/docker.service.d'
DOCKER_OVERRIDE_FILE = f'{DOCKER_OVERRIDE_DIR}/override.conf'
DOCKER_IPTABLES_RAW_ENV = 'DOCKER_INSECURE_NO_IPTABLES_RAW=1'

BUILDX_INSTALL_HINT = 'sudo apt-get install -y docker-buildx-plugin'
DOCKER_INSTALL_HINT = 'https://docs.docker.com/engine/install/'


def iptables_raw_workaround_lines() -> list[str]:
    """
    Return the manual remediation commands for the Jetson iptables/raw issue.

    Setting DOCKER_INSECURE_NO_IPTABLES_RAW trades away dockerd's direct
    access filtering, so it is printed for the operator, never applied.
    """
    return [
        f"sudo mkdir -p {DOCKER_OVERRIDE_DIR}",
        f"printf '[Service]\\nEnvironment={DOCKER_IPTABLES_RAW_ENV}\\n' | sudo tee {DOCKER_OVERRIDE_FILE}",
        "sudo systemctl daemon-reload && sudo systemctl restart docker",
    ]
