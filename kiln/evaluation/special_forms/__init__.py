"""Registry of special forms for the kiln evaluator.

Maps Symbols to handler functions that implement non-standard evaluation rules.
The evaluator consults this table to dispatch special forms before ordinary
function application.
"""

from kiln.types.symbol import Symbol
from kiln.evaluation.special_forms.define_form import define_form
from kiln.evaluation.special_forms.defn_form import defn_form
from kiln.evaluation.special_forms.lambda_form import lambda_form
from kiln.evaluation.special_forms.if_form import if_form
from kiln.evaluation.special_forms.let_form import let_form
from kiln.evaluation.special_forms.progn_form import progn_form

SPECIAL_FORMS = {
    Symbol("define"): define_form,
    Symbol("defn"): defn_form,
    Symbol("lambda"): lambda_form,
    Symbol("if"): if_form,
    Symbol("let"): let_form,
    Symbol("progn"): progn_form,
    Symbol("begin"): progn_form,
}
