"""Minimal demonstration of the vault chat agent."""

from vault_agent.api.service import run_chat

if __name__ == "__main__":
    question = "Which of my notes mention python? Summarize them in two sentences."
    reply = run_chat(question, use_search=True, use_agent=True)
    print("User:", question)
    print("Agent:", reply["answer"] or reply["notice"])
