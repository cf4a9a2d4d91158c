import os
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from dotenv import load_dotenv

# Carrega as variáveis do arquivo .env para o ambiente
load_dotenv()

# Caminhos Base
BASE_DIR = Path(__file__).resolve().parent.parent
DIR_SAIDA = Path(os.getenv('DIR_SAIDA', str(BASE_DIR / "data" / "output")))

# --- Parâmetros de Correlação de Empresas ---
# Score mínimo para uma empresa do relatório virar "sugestão" de cliente cadastrado
SUGGESTION_THRESHOLD = float(os.getenv('SUGGESTION_THRESHOLD', '0.5'))

# Quantidade máxima de sugestões exibidas ao operador por empresa
MAX_SUGGESTIONS = int(os.getenv('MAX_SUGGESTIONS', '3'))

# Estratégia de similaridade: 'containment' (padrão) ou 'jaccard'
SIMILARITY_STRATEGY = os.getenv('SIMILARITY_STRATEGY', 'containment')

# --- Parâmetros de Licenças ---
# Janela (em dias) para considerar uma licença "próxima do vencimento"
NEAR_EXPIRY_DAYS = int(os.getenv('NEAR_EXPIRY_DAYS', '30'))

# --- Parâmetros de Gravação ---
# Gravações por empresa são independentes e podem rodar em paralelo
COMMIT_MAX_WORKERS = int(os.getenv('COMMIT_MAX_WORKERS', '4'))

# --- Colaboradores conhecidos ---
# Usados para marcar quais responsáveis aparecem nas demandas de cada empresa
KNOWN_COLLABORATORS = [
    nome.strip().lower()
    for nome in os.getenv('KNOWN_COLLABORATORS', 'celine,gabi,darley,vanessa').split(',')
    if nome.strip()
]

# --- Configuração de Logging com Rotação ---
# RotatingFileHandler evita crescimento descontrolado de logs
LOG_DIR = Path(os.getenv('LOG_DIR', str(BASE_DIR / "logs")))
LOG_DIR.mkdir(parents=True, exist_ok=True)
LOG_FILE = LOG_DIR / "conciliador.log"

# Handler com rotação: 10MB por arquivo, mantém 5 backups
rotating_handler = RotatingFileHandler(
    LOG_FILE,
    maxBytes=10 * 1024 * 1024,  # 10MB
    backupCount=5,
    encoding='utf-8'
)

# Formato detalhado para auditoria
log_formatter = logging.Formatter(
    '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
rotating_handler.setFormatter(log_formatter)

# Também envia para console
console_handler = logging.StreamHandler()
console_handler.setFormatter(log_formatter)

# Logger do projeto. Os módulos usam logging.getLogger(__name__), então os
# pacotes de código recebem os mesmos handlers.
logger = logging.getLogger('conciliador')

for _nome in ('conciliador', 'core', 'services', 'strategies'):
    _logger = logging.getLogger(_nome)
    _logger.setLevel(logging.INFO)
    if not _logger.handlers:
        _logger.addHandler(rotating_handler)
        _logger.addHandler(console_handler)
