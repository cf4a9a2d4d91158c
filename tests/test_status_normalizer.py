"""
Testes para a normalização de status dos seis domínios.

Foco principal: totalidade (qualquer texto vira um valor do enum) e a
classificação de licenças pela data, sempre com `today` injetado.
"""

import unittest
from datetime import date, datetime, timedelta

from core.domains import DOMAINS, extract_collaborators, get_domain
from core.status_normalizer import (
    LICENSE_EXPIRED,
    LICENSE_NEAR_EXPIRY,
    LICENSE_VALID,
    StatusNormalizer,
    classify_license,
    count_by_status,
    rule,
)

ENTRADAS_ESTRANHAS = [
    None,
    "",
    "   ",
    "???",
    "12345",
    "status desconhecido",
    "ÇÃÕ",
    "\t\n",
    "CONCLUÍDA",
    "Indeferido",
    "a vencer",
]


class TestTotalidade(unittest.TestCase):
    """Qualquer entrada vira um valor do enum do domínio, sem exceção."""

    def test_todos_os_dominios(self):
        for key, descriptor in DOMAINS.items():
            for entrada in ENTRADAS_ESTRANHAS:
                with self.subTest(dominio=key, entrada=entrada):
                    self.assertIn(descriptor.normalizer.normalize(entrada), descriptor.statuses)

    def test_vazio_vira_padrao(self):
        for descriptor in DOMAINS.values():
            self.assertEqual(descriptor.normalizer.normalize(""), descriptor.normalizer.default)
            self.assertEqual(descriptor.normalizer.normalize(None), descriptor.normalizer.default)

    def test_normalizador_recusa_status_fora_do_enum(self):
        with self.assertRaises(ValueError):
            StatusNormalizer(statuses=("A", "B"), default="C")
        with self.assertRaises(ValueError):
            StatusNormalizer(statuses=("A", "B"), default="A", rules=(rule("Z", "z"),))


class TestDemanda(unittest.TestCase):
    def setUp(self):
        self.normalize = get_domain("demanda").normalizer.normalize

    def test_tabela_direta(self):
        self.assertEqual(self.normalize("CONCLUÍDA"), "CONCLUIDO")
        self.assertEqual(self.normalize("Concluído"), "CONCLUIDO")
        self.assertEqual(self.normalize("EM_EXECUCAO"), "EM_EXECUCAO")
        self.assertEqual(self.normalize("Não Feito"), "NAO_FEITO")
        self.assertEqual(self.normalize("cancelada"), "CANCELADO")

    def test_palavras_chave(self):
        self.assertEqual(self.normalize("em andamento"), "EM_EXECUCAO")
        self.assertEqual(self.normalize("Em execução (aguardando cliente)"), "EM_EXECUCAO")
        self.assertEqual(self.normalize("Cancelado pelo cliente"), "CANCELADO")
        self.assertEqual(self.normalize("100% concluido"), "CONCLUIDO")

    def test_padrao(self):
        self.assertEqual(self.normalize("aguardando"), "NAO_FEITO")


class TestProcesso(unittest.TestCase):
    def setUp(self):
        self.normalize = get_domain("processo").normalizer.normalize

    def test_indeferido_nao_vira_deferido(self):
        self.assertEqual(self.normalize("INDEFERIDO"), "REPROVADO")
        self.assertEqual(self.normalize("Processo indeferido pelo órgão"), "REPROVADO")
        self.assertEqual(self.normalize("Deferido com ressalvas"), "DEFERIDO")

    def test_analise(self):
        self.assertEqual(self.normalize("Em análise pelo Órgão ambiental"), "EM_ANALISE_ORGAO")
        self.assertEqual(self.normalize("EM ANÁLISE PELA RAMOS"), "EM_ANALISE_RAMOS")

    def test_outros(self):
        self.assertEqual(self.normalize("Notificado"), "NOTIFICADO")
        self.assertEqual(self.normalize("Arquivado"), "OUTROS")


class TestNotificacoesECondicionantes(unittest.TestCase):
    def test_notificacao(self):
        normalize = get_domain("notificacao").normalizer.normalize
        self.assertEqual(normalize("Atendida parcialmente"), "ATENDIDA")
        self.assertEqual(normalize("aberta"), "PENDENTE")

    def test_item_notificacao(self):
        normalize = get_domain("item_notificacao").normalizer.normalize
        self.assertEqual(normalize("atendido"), "ATENDIDO")
        self.assertEqual(normalize("Vencido"), "VENCIDO")
        self.assertEqual(normalize("em aberto"), "PENDENTE")

    def test_condicionante(self):
        normalize = get_domain("condicionante").normalizer.normalize
        self.assertEqual(normalize("Concluída"), "ATENDIDA")
        self.assertEqual(normalize("Vencida"), "VENCIDA")
        self.assertEqual(normalize("A vencer"), "A_VENCER")
        # "fazer" também é prazo em aberto
        self.assertEqual(normalize("A fazer"), "A_VENCER")
        self.assertEqual(normalize("sem informação"), "A_FAZER")

    def test_licenca_texto(self):
        normalize = get_domain("licenca").normalizer.normalize
        self.assertEqual(normalize("Próximo do vencimento"), LICENSE_NEAR_EXPIRY)
        self.assertEqual(normalize("Vigente"), LICENSE_VALID)
        self.assertEqual(normalize("Vencida"), LICENSE_EXPIRED)


class TestClassifyLicense(unittest.TestCase):
    """Status de licença derivado do vencimento."""

    def setUp(self):
        self.today = date(2025, 1, 1)

    def test_proximo_vencimento(self):
        self.assertEqual(classify_license(self.today + timedelta(days=10), self.today), LICENSE_NEAR_EXPIRY)

    def test_vencida_ontem(self):
        self.assertEqual(classify_license(self.today - timedelta(days=1), self.today), LICENSE_EXPIRED)

    def test_sem_data(self):
        self.assertEqual(classify_license(None, self.today), LICENSE_EXPIRED)

    def test_limites_da_janela(self):
        self.assertEqual(classify_license(self.today, self.today), LICENSE_NEAR_EXPIRY)
        self.assertEqual(classify_license(self.today + timedelta(days=30), self.today), LICENSE_NEAR_EXPIRY)
        self.assertEqual(classify_license(self.today + timedelta(days=31), self.today), LICENSE_VALID)

    def test_aceita_datetime(self):
        self.assertEqual(
            classify_license(datetime(2025, 6, 1, 8, 30), datetime(2025, 1, 1, 23, 59)),
            LICENSE_VALID,
        )


class TestContagens(unittest.TestCase):
    def test_count_by_status_inicia_todos_em_zero(self):
        normalizer = get_domain("demanda").normalizer
        counts = count_by_status(["CONCLUIDO", "CONCLUIDO", "CANCELADO"], normalizer)
        self.assertEqual(counts, {"CONCLUIDO": 2, "EM_EXECUCAO": 0, "NAO_FEITO": 0, "CANCELADO": 1})

    def test_extract_collaborators(self):
        conhecidos = ["celine", "gabi", "darley", "vanessa"]
        self.assertEqual(extract_collaborators("Gabi / Darley", conhecidos), ["gabi", "darley"])
        self.assertEqual(extract_collaborators("CÉLINE", conhecidos), ["celine"])
        self.assertEqual(extract_collaborators(None, conhecidos), [])


if __name__ == "__main__":
    unittest.main()
