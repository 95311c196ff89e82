# Services package init
"""
StackIt Backend — Services Layer
==================================

What:  Business rules between the HTTP routes and the ORM models.
How:   One stateless class per resource with a module-level instance. Every
       method takes the request's MonitoredSession as its first argument;
       mutating methods commit their own unit of work so routes can broadcast
       real-time events knowing the data is durable.

Service Inventory:
    - AuthService:          registration, login, profile, passwords, account deletion
    - QuestionService:      question CRUD, listing, slugs, question-side acceptance
    - AnswerService:        answer CRUD, acceptance and its reputation bonus
    - VoteService:          tri-state voting, vote counters, author reputation
    - TagService:           tag catalogue and question-tag links (usage counts)
    - NotificationService:  notification creation and the per-user inbox

Import order:
    notification, tag → vote → answer → question → auth
    (each only imports services to its left)
"""
