"""Selectors and labels for the Assectra screens the harvester drives.

The portal is an AngularJS application; most hooks are ``ng-model`` /
``ng-click`` attributes, which have proven more stable than CSS classes.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from . import config

_ASSECTRA = config.ASSECTRA_BASE_URL.rstrip("/")


@dataclass(frozen=True)
class DocumentScreenSelectors:
    """Selector hints for a filterable, paginated "acervo digital" screen.

    ``employee_column`` is set on screens whose table lists one employee per
    group of rows; downloads are then grouped by employee instead of project.
    """

    url: str
    output_dir_name: str
    company_select: str
    project_select: str
    sent_only_checkbox: str
    search_button: str
    table: str
    row: str
    no_results: str
    page_info: str
    next_page: str
    action_icon: str
    modal: str
    file_element: str
    modal_close: str
    file_column: str = "ARQUIVOS"
    employee_column: Optional[str] = None
    no_results_phrase: str = config.NO_RESULTS_PHRASE

    @property
    def header_row(self) -> str:
        return f"{self.table} thead tr"

    @property
    def results_or_empty(self) -> str:
        return f"{self.table}, {self.no_results}"

    @property
    def required_columns(self) -> Tuple[str, ...]:
        if self.employee_column:
            return (self.file_column, self.employee_column)
        return (self.file_column,)


_PANEL = "div.panel-body"

COMPANY_DOCUMENTS = DocumentScreenSelectors(
    url=f"{_ASSECTRA}/acervo-digital.php",
    output_dir_name="company-documents",
    company_select='.panel.panel-default select[ng-model="Filtros.Empreiteiro_id"]',
    project_select='select[ng-model="Filtros.Obra_id"]',
    sent_only_checkbox='.panel-body input[ng-model="FiltrosEnviado"]',
    search_button='.panel-body button[ng-click="getDocumentos()"]',
    table=f"{_PANEL} table.table-hover",
    row=f"{_PANEL} table.table-hover tbody tr[ng-repeat]",
    no_results=f"{_PANEL} h3.text-center:not(.ng-hide)",
    page_info="ul.pagination a.rounded",
    next_page='span[ng-click="proximaPagina()"]',
    action_icon='i.fa-search[ng-click*="ProcessaArquivo"]',
    modal="md-dialog",
    file_element="md-dialog iframe[ng-src], md-dialog img[ng-src]",
    modal_close='md-dialog i.fa-times[ng-click="hide()"]',
)

EMPLOYEE_DOCUMENTS = DocumentScreenSelectors(
    url=f"{_ASSECTRA}/acervo-digital-colaboradores.php",
    output_dir_name="employee-documents",
    company_select='.panel.panel-default select[ng-model="Filtros.Empreiteiro_id"]',
    project_select='select[ng-model="Filtros.Obra_id"]',
    sent_only_checkbox='.panel-body input[ng-model="FiltrosEnviado"]',
    search_button='.panel-body button[ng-click="getDocumentos()"]',
    table=f"{_PANEL} table.table-hover",
    row=f"{_PANEL} table.table-hover tbody tr[ng-repeat]",
    no_results=f"{_PANEL} h3.text-center:not(.ng-hide)",
    page_info="ul.pagination a.rounded",
    next_page='span[ng-click="proximaPagina()"]',
    action_icon='i.fa-search[ng-click*="ProcessaArquivo"]',
    modal="md-dialog",
    file_element="md-dialog iframe[ng-src], md-dialog img[ng-src]",
    modal_close='md-dialog i.fa-times[ng-click="hide()"]',
    employee_column="COLABORADOR",
)


@dataclass(frozen=True)
class EmployeeProfileSelectors:
    url: str = f"{_ASSECTRA}/colaboradores.php"
    output_dir_name: str = "employee-profiles"
    company_select: str = 'select[ng-model="FiltrosEmpreiteiro_id"]'
    search_button: str = 'button[ng-click="Pesquisar()"]'
    table: str = "table.table-hover"
    employee_link: str = 'a[ng-click^="EditarColaborador"]'
    name_input: str = 'input[ng-model="Colaborador.Nome"]'
    national_id_input: str = 'input[ng-model="Colaborador.CPF"]'
    employer_select: str = 'select[ng-model="Colaborador.Empreiteiro_id"]'
    role_select: str = 'select[ng-model="Colaborador.Funcao_id"]'
    photo: str = "img#FotoReconhecimento"
    backdrop: str = "md-backdrop"
    spinner: str = "md-progress-circular"


@dataclass(frozen=True)
class LoginSelectors:
    url: str = config.ASSECTRA_BASE_URL
    username: str = '.login-card input[ng-model="Credenciais.Usuario"]'
    password: str = '.login-card input[ng-model="Credenciais.Senha"]'
    submit: str = '.login-card button[ng-click="Acessar()"]'


EMPLOYEE_PROFILES = EmployeeProfileSelectors()
ASSECTRA_LOGIN = LoginSelectors()

__all__ = [
    "DocumentScreenSelectors",
    "EmployeeProfileSelectors",
    "LoginSelectors",
    "COMPANY_DOCUMENTS",
    "EMPLOYEE_DOCUMENTS",
    "EMPLOYEE_PROFILES",
    "ASSECTRA_LOGIN",
]
