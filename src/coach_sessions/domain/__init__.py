"""Domínio de sessões: modelos, regras e contratos (sem infraestrutura)."""
