"""
Temporal - Execução durável dos runs e das cadências de follow-up.

Este módulo implementa a integração com Temporal.io para:
- Segmentos de run com retry automático e backoff exponencial
- Retomada de DELAY via workflows agendados (start_delay)
- Steps de cadência reagendados com job id determinístico

Estrutura:
- client.py: Cliente para conectar ao Temporal Server
- config.py: Configurações, retry policy e nomes de workflows
- requeue.py: Fila de reentrada com atraso
- service.py: Funções síncronas para a API Flask
- worker.py: Worker que registra workflows e activities
- workflows/: Definições de workflows
- activities/: Definições de activities
"""
