"""
Script de Importação de Relatórios Operacionais.

Lê um relatório (planilha, CSV, PDF com tabelas ou boletim mensal em PDF),
correlaciona as empresas com o cadastro de clientes e gera os relatórios
de conferência.

Funcionalidades:
1.  Carrega o cadastro de clientes de um CSV (colunas id;nome).
2.  Faz o parsing do relatório conforme o domínio escolhido.
3.  Correlaciona cada empresa com o cadastro (apelido, exata, sugerida ou sem match).
4.  Imprime o resumo por empresa e exporta CSVs em DIR_SAIDA.
5.  Com --commit, simula a gravação das empresas selecionadas.

Usage:
    python run_import.py licenca relatorio.xlsx --clientes clientes.csv
    python run_import.py demanda demandas.xlsx --clientes clientes.csv --commit --operador celine
    python run_import.py boletim boletim_set.pdf --clientes clientes.csv --apelidos apelidos.csv
"""

import argparse
import sys
from datetime import date
from pathlib import Path

from config import settings
from core.domains import DOMAINS
from core.exceptions import ConciliadorException
from core.models import OperatorContext
from core.similarity import SIMILARITY_STRATEGIES
from core.wizard import WizardStep
from services.import_service import (
    CsvClientRegistry,
    ImportService,
    InMemoryAliasStore,
    RecordingPersistence,
)

_MATCH_ICONS = {"exact": "✅", "suggested": "🔶", "none": "❓"}


def _print_summary(wizard) -> None:
    snapshot = wizard.snapshot()
    report = snapshot["parse_report"]
    if report:
        print(
            f"\n📄 {report['arquivo']} [{report['planilha']}]: "
            f"{report['aceitas']}/{report['total_linhas']} linhas aceitas"
        )
        if report["descartadas_sem_empresa"]:
            print(f"   ⚠️ {report['descartadas_sem_empresa']} linha(s) sem empresa descartada(s)")
        if report["descartadas_por_filtro"]:
            print(f"   ⚠️ {report['descartadas_por_filtro']} linha(s) filtrada(s)")
        if report["datas_invalidas"]:
            print(f"   ⚠️ {report['datas_invalidas']} data(s) inválida(s)")
    if snapshot["arquivo_hash"]:
        print(f"🔑 SHA-256: {snapshot['arquivo_hash']}")

    print(f"\n🏢 {snapshot['totais']['empresas']} empresa(s) no lote {snapshot['batch_id']}:")
    for empresa in snapshot["empresas"]:
        match = empresa["match"]
        icon = _MATCH_ICONS.get(match["match_type"], "")
        destino = match["cliente_nome"] or empresa["nome_novo"] or "-"
        contagens = ", ".join(
            f"{status}={qtd}" for status, qtd in empresa["resumo"]["por_status"].items() if qtd
        )
        print(
            f"  {icon} {empresa['empresa']} -> {destino} "
            f"(score {match['score']:.2f}, {empresa['decisao']}) | "
            f"total {empresa['resumo']['total']}: {contagens}"
        )

    for erro in snapshot["errors"]:
        print(f"  ❌ {erro['mensagem']}")


def main() -> int:
    """Função principal."""
    parser = argparse.ArgumentParser(
        description='Importação de relatórios operacionais com correlação de clientes',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exemplos:
  # Conferir um relatório de licenças (sem gravar)
  python run_import.py licenca licencas.xlsx --clientes clientes.csv

  # Simular a gravação criando clientes para empresas desconhecidas
  python run_import.py demanda demandas.xlsx --clientes clientes.csv --commit --criar-faltantes
        """
    )
    parser.add_argument('dominio', choices=sorted(DOMAINS), help='Domínio do relatório')
    parser.add_argument('arquivo', type=str, help='Arquivo do relatório (xlsx, xls, csv ou pdf)')
    parser.add_argument(
        '--clientes',
        type=str,
        required=True,
        help='CSV do cadastro de clientes (colunas id e nome)'
    )
    parser.add_argument(
        '--apelidos',
        type=str,
        default=None,
        help='CSV de apelidos de clientes (colunas apelido e cliente_id)'
    )
    parser.add_argument(
        '--operador',
        type=str,
        default='sistema',
        help='Nome do operador registrado como autor (padrão: sistema)'
    )
    parser.add_argument(
        '--similaridade',
        choices=sorted(SIMILARITY_STRATEGIES),
        default=settings.SIMILARITY_STRATEGY,
        help='Estratégia de similaridade de nomes'
    )
    parser.add_argument(
        '--hoje',
        type=date.fromisoformat,
        default=None,
        help='Data de referência (YYYY-MM-DD) para status de licenças'
    )
    parser.add_argument('--commit', action='store_true', help='Simula a gravação das empresas selecionadas')
    parser.add_argument(
        '--criar-faltantes',
        action='store_true',
        help='Marca empresas sem correspondência para criação de cliente'
    )
    parser.add_argument('--saida', type=str, default=None, help=f'Diretório de saída (padrão: {settings.DIR_SAIDA})')

    args = parser.parse_args()

    arquivo = Path(args.arquivo)
    if not arquivo.exists():
        print(f"❌ Arquivo não encontrado: {arquivo}")
        return 1

    try:
        registry = CsvClientRegistry.from_path(args.clientes)
    except (OSError, ValueError) as e:
        print(f"❌ Falha ao carregar cadastro de clientes: {e}")
        return 1
    print(f"📇 {len(registry.list_clients())} cliente(s) no cadastro")

    aliases = None
    if args.apelidos:
        try:
            aliases = InMemoryAliasStore.from_path(args.apelidos)
        except (OSError, ValueError) as e:
            print(f"❌ Falha ao carregar apelidos: {e}")
            return 1
        print(f"🔗 {len(aliases)} apelido(s) carregado(s)")

    service = ImportService(
        registry,
        RecordingPersistence(),
        output_dir=args.saida,
        similarity=args.similaridade,
        aliases=aliases,
    )
    try:
        wizard = service.import_file(
            args.dominio,
            arquivo.read_bytes(),
            arquivo.name,
            OperatorContext(args.operador),
            create_missing=args.criar_faltantes,
            dry_run=not args.commit,
            today=args.hoje,
        )
    except ConciliadorException as e:
        print(f"❌ {e}")
        return 1

    _print_summary(wizard)

    if wizard.step is WizardStep.ERROR:
        return 1

    paths = service.export_reports(wizard)
    for nome, caminho in paths.items():
        print(f"📊 {nome}: {caminho}")

    if args.commit:
        if wizard.step is WizardStep.COMPLETE:
            print("\n✅ Gravação concluída")
        else:
            print(f"\n⚠️ Gravação incompleta (etapa: {wizard.step.value})")
            return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
